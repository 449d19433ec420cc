import logging

from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from .booking import BookingError
from .core.config import get_settings
from .core.db import AsyncSessionLocal, Base, engine, get_session
from .core.responses import ErrorCodes, error_response
from .public_booking import booking_error_handler, router as public_booking_router
from .seed import seed_demo_data


settings = get_settings()
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
app = FastAPI(title="Salon Booking Backend")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(BookingError, booking_error_handler)
app.include_router(public_booking_router)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    fields = {
        ".".join(str(part) for part in err["loc"] if part != "body"): err["msg"]
        for err in exc.errors()
    }
    return JSONResponse(
        status_code=422,
        content=error_response(ErrorCodes.VALIDATION_ERROR, "Request is invalid", {"fields": fields}),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_response(ErrorCodes.INTERNAL_ERROR, "An unexpected error occurred"),
    )


@app.on_event("startup")
async def on_startup():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    if settings.seed_demo_data:
        async with AsyncSessionLocal() as session:
            salon = await seed_demo_data(session)
        logger.info(f"Demo data ready: salon {salon.id} ({salon.slug})")


@app.get("/health")
async def health(session: AsyncSession = Depends(get_session)):
    """Liveness plus a round trip to the database."""
    await session.execute(text("SELECT 1"))
    return {"status": "ok"}
