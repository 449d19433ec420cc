from sqlalchemy import select

from .core.config import get_settings
from .models import Salon, Service, Staff


settings = get_settings()

DEMO_SALON_SLUG = "demo-salon"


async def seed_demo_data(session) -> Salon:
    result = await session.execute(select(Salon).where(Salon.slug == DEMO_SALON_SLUG))
    salon = result.scalar_one_or_none()

    if not salon:
        salon = Salon(
            slug=DEMO_SALON_SLUG,
            name="Demo Salon",
            timezone=settings.default_timezone,
            currency=settings.default_currency,
            hours={
                "monday": "09:00-18:00",
                "tuesday": "09:00-18:00",
                "wednesday": "09:00-18:00",
                "thursday": "09:00-20:00",
                "friday": "09:00-18:00",
                "saturday": "09:00-16:00",
                "sunday": "closed",
            },
        )
        session.add(salon)
        await session.flush()

    # Seed services if missing
    result = await session.execute(select(Service).where(Service.salon_id == salon.id))
    services = result.scalars().all()
    if not services:
        session.add_all(
            [
                Service(
                    salon_id=salon.id,
                    code="haircut",
                    name="Haircut",
                    duration_minutes=45,
                    price_cents=12000,
                ),
                Service(
                    salon_id=salon.id,
                    code="coloring",
                    name="Coloring",
                    duration_minutes=90,
                    price_cents=25000,
                ),
                Service(
                    salon_id=salon.id,
                    code="blow-dry",
                    name="Blow Dry",
                    duration_minutes=30,
                    price_cents=6000,
                ),
            ]
        )

    result = await session.execute(select(Staff).where(Staff.salon_id == salon.id))
    staff = result.scalars().all()
    if not staff:
        session.add_all(
            [
                Staff(salon_id=salon.id, name="Anna", spoken_locales=["pl", "en"], active=True),
                Staff(salon_id=salon.id, name="Olga", spoken_locales=["uk", "ru", "pl"], active=True),
            ]
        )

    await session.commit()
    return salon
