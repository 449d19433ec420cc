from typing import Optional, Sequence, Union

from .errors import ServiceNotFoundError, StaffNotFoundError
from .records import ServiceRecord, StaffRecord
from .store import BookingStore


def split_service_refs(refs: Sequence[Union[int, str]]) -> tuple[list[int], list[str]]:
    """Numeric refs (or digit strings) are ids, anything else is a service code."""
    ids, codes = [], []
    for ref in refs:
        if isinstance(ref, int) or (isinstance(ref, str) and ref.strip().isdigit()):
            ids.append(int(ref))
        elif isinstance(ref, str) and ref.strip():
            codes.append(ref.strip())
    return ids, codes


async def resolve_services(
    store: BookingStore,
    salon_id: int,
    refs: Sequence[Union[int, str]],
) -> list[ServiceRecord]:
    """
    Resolve every ref to an active service of the salon, keeping request order.

    Raises ServiceNotFoundError naming the refs that are unknown or inactive.
    """
    ids, codes = split_service_refs(refs)
    found = await store.get_services(salon_id, ids, codes)
    by_id = {s.id: s for s in found if s.active}
    by_code = {s.code: s for s in found if s.active}

    services, missing = [], []
    for ref in refs:
        if isinstance(ref, int) or (isinstance(ref, str) and ref.strip().isdigit()):
            service = by_id.get(int(ref))
        else:
            service = by_code.get(str(ref).strip())
        if service is None:
            missing.append(str(ref))
        elif service not in services:
            services.append(service)

    if missing or not services:
        raise ServiceNotFoundError(
            f"Services not found: {', '.join(missing)}" if missing else None,
            details={"missing": missing},
        )
    return services


async def resolve_staff(
    store: BookingStore,
    salon_id: int,
    staff_id: Optional[int] = None,
) -> list[StaffRecord]:
    """Active staff of the salon; a requested staff_id must be one of them."""
    staff = await store.list_active_staff(salon_id, staff_id)
    if staff_id is not None and not staff:
        raise StaffNotFoundError(details={"staff_id": staff_id})
    return staff
