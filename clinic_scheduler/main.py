import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from clinic_scheduler.core import config
from clinic_scheduler.database import Base, SessionLocal, engine, ensure_scheduler_schema
from clinic_scheduler.models import appointment, slot, user  # noqa: F401
from clinic_scheduler.routes import appointment_routes, slot_routes
from clinic_scheduler.routes.deps import get_channels, get_clock, get_settings
from clinic_scheduler.services.reminder_service import ReminderService

logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
)

app = FastAPI()

app.add_middleware(
    CORSMiddleware,
    allow_origins=['http://localhost:4200'],
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)

app.state.reminder_service = None


@app.on_event('startup')
async def startup() -> None:
    # An unknown timezone is fatal here rather than per request.
    config.validate_runtime_config()

    try:
        Base.metadata.create_all(bind=engine)
        ensure_scheduler_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL.')

    if config.REMINDERS_ENABLED:
        reminder_service = ReminderService(SessionLocal, get_channels(), get_settings(), get_clock())
        reminder_service.start()
        app.state.reminder_service = reminder_service


@app.on_event('shutdown')
async def shutdown() -> None:
    reminder_service = app.state.reminder_service
    if reminder_service is not None:
        await reminder_service.stop()
        app.state.reminder_service = None


@app.get('/')
def root():
    return {'status': 'Clinic Scheduler API Running'}


app.include_router(slot_routes.router, prefix='/slots')
app.include_router(appointment_routes.router, prefix='/appointments')
