import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from rx_reminder.api.routes_notifications import router as notifications_router
from rx_reminder.api.routes_reminders import router as reminders_router
from rx_reminder.api.routes_scan import router as scan_router
from rx_reminder.core.log_config import setup_logging
from rx_reminder.services.reminder_store import StorageCorrupted
from rx_reminder.services.scheduler import get_scheduler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    scheduler = get_scheduler()
    scheduler.start()
    try:
        yield
    finally:
        scheduler.stop()


app = FastAPI(title="Prescription Reminders (OCR + LangGraph)", version="1.0", lifespan=lifespan)

app.include_router(scan_router)
app.include_router(reminders_router)
app.include_router(notifications_router)


@app.exception_handler(StorageCorrupted)
def storage_corrupted(request: Request, exc: StorageCorrupted):
    logger.error("Reminder storage unreadable: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "Saved reminders could not be read. Clear them to start over."},
    )


@app.get("/health")
def health():
    return {"ok": True, "scheduler": get_scheduler().running}


@app.get("/")
def root():
    return {"ok": True, "service": "Prescription Reminders (OCR + LangGraph)"}
