import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from dental_booking.core.errors import SchedulingError
from dental_booking.core.settings import settings, validate_settings
from dental_booking.db.session import SessionLocal, engine
from dental_booking.models import Base
from dental_booking.routers.appointments import router as appointments_router
from dental_booking.routers.auth import router as auth_router
from dental_booking.routers.schedules import router as schedules_router
from dental_booking.services.users import seed_initial_admin

app = FastAPI(title="Dental Booking API", version="0.1.0")
logger = logging.getLogger("dental_booking.startup")
error_logger = logging.getLogger("dental_booking.errors")


@app.exception_handler(SchedulingError)
async def scheduling_error_handler(request: Request, exc: SchedulingError):
    error_logger.info(
        "%s %s -> %s: %s",
        request.method,
        request.url.path,
        exc.code,
        exc.message,
        extra={"request_id": request.headers.get("x-request-id")},
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    fields: dict[str, str] = {}
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part not in {"body", "query", "path"}]
        fields[".".join(loc) or "request"] = error.get("msg", "Invalid value")
    return JSONResponse(
        status_code=422,
        content={
            "code": "validation_error",
            "detail": "Please check the highlighted fields.",
            "fields": fields,
        },
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    request_id = request.headers.get("x-request-id")
    logger.exception("Unhandled server error", extra={"request_id": request_id})
    payload = {"detail": "Internal server error"}
    if request_id:
        payload["request_id"] = request_id
    return JSONResponse(status_code=500, content=payload)


@app.on_event("startup")
def startup():
    validate_settings(settings)
    Base.metadata.create_all(bind=engine)

    admin_email = str(settings.admin_email)
    admin_password = settings.admin_password.strip()
    db: Session = SessionLocal()
    try:
        created = seed_initial_admin(db, email=admin_email, password=admin_password)
        if created:
            logger.info("Initial admin created for %s.", admin_email)
        else:
            logger.info("Initial admin not created (users already exist).")
    finally:
        db.close()
    logger.info(
        "Clinic timezone %s, patient cancellation lead time %sh.",
        settings.clinic_timezone,
        settings.cancellation_lead_hours,
    )


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(auth_router)
app.include_router(appointments_router)
app.include_router(schedules_router)
