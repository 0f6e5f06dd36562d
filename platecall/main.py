"""Main FastAPI application."""
import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from platecall.api import admission, calls, health, owners, vehicles
from platecall.core.config import settings
from platecall.core.errors import PlateCallError
from platecall.core.logging import setup_logging
from platecall.db.database import AsyncSessionLocal, init_db
from platecall.services.call_session.sweeper import run_ringing_sweeper
from platecall.services.notifications.hub import call_event_hub

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    setup_logging()
    await init_db()
    sweeper = None
    if settings.ringing_sweep_interval_seconds > 0:
        sweeper = asyncio.create_task(
            run_ringing_sweeper(
                AsyncSessionLocal, call_event_hub, settings.ringing_sweep_interval_seconds
            )
        )
    yield
    # Shutdown
    if sweeper is not None:
        sweeper.cancel()
        await asyncio.gather(sweeper, return_exceptions=True)


app = FastAPI(
    title="PlateCall",
    description="Call a vehicle's owner by scanning its plate QR code",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(PlateCallError)
async def plate_call_error_handler(request: Request, exc: PlateCallError):
    """Render signaling errors as {ok: false, error, code, ...}."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    logger.info(f"[REQUEST] Invalid request to {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=400,
        content={
            "ok": False,
            "error": "Invalid request",
            "code": "invalid_request",
            "details": [
                {"loc": list(error.get("loc", ())), "msg": error.get("msg", "")}
                for error in exc.errors()
            ],
        },
    )


app.include_router(health.router, tags=["health"])
app.include_router(calls.router, tags=["calls"])
app.include_router(owners.router, tags=["owners"])
app.include_router(admission.router, tags=["admission"])
app.include_router(vehicles.router, tags=["vehicles"])


@app.get("/")
async def root():
    return {"message": "PlateCall API", "version": "0.1.0"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("platecall.main:app", host=settings.host, port=settings.port)
