# carelog/main.py
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .database import settings
from .errors import CareLogError, NotFoundError, PersistenceError, ToggleInProgressError, ValidationError
from .routes import appointments, companies, patients, plans, services, statistics

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logging.getLogger("pymongo").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)

app = FastAPI(title="CareLog Visit Planner")

# Routers with prefixes + tags for Swagger
app.include_router(companies.router, prefix="/api/companies", tags=["Companies"])
app.include_router(plans.router, prefix="/api/plans", tags=["Plans"])
app.include_router(patients.router, prefix="/api/patients", tags=["Patients"])
app.include_router(services.router, prefix="/api/services", tags=["Services"])
app.include_router(appointments.router, prefix="/api/appointments", tags=["Appointments"])
app.include_router(statistics.router, prefix="/api/statistics", tags=["Statistics"])

_STATUS = {
    ValidationError: 422,
    NotFoundError: 404,
    ToggleInProgressError: 409,
    PersistenceError: 503,
}


@app.exception_handler(CareLogError)
async def carelog_error_handler(request: Request, exc: CareLogError):
    status = next((code for cls, code in _STATUS.items() if isinstance(exc, cls)), 400)
    if status >= 500:
        logger.error("%s %s - %s", request.method, request.url.path, exc)
    else:
        logger.warning("%s %s - %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status, content={"detail": str(exc), "action": exc.action})
