"""Create the provider if missing and generate slots for a date range.

Usage:
    python -m clinic_scheduler.seed_slots 2025-11-01 2025-12-31 [--mode IN_PERSON --mode ONLINE]
"""
import argparse
import logging
import os
import sys
from datetime import date

from clinic_scheduler.core import config
from clinic_scheduler.core.clock import TimeZoneClock
from clinic_scheduler.core.errors import SchedulingError
from clinic_scheduler.database import Base, SessionLocal, engine
from clinic_scheduler.models.slot import AppointmentMode
from clinic_scheduler.models.user import ROLE_ADMIN, User
from clinic_scheduler.services.slot_generator import SlotGenerator

logger = logging.getLogger(__name__)


def ensure_provider(db) -> User:
    provider = db.query(User).filter(User.role == ROLE_ADMIN).first()
    if provider is not None:
        return provider

    provider = User(
        name=os.getenv('PROVIDER_NAME', 'Doctor'),
        email=os.getenv('PROVIDER_EMAIL', 'provider@example.com'),
        phone=os.getenv('PROVIDER_PHONE'),
        role=ROLE_ADMIN,
    )
    db.add(provider)
    db.commit()
    db.refresh(provider)
    logger.info('Created provider %s', provider.email)
    return provider


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument('start_date', type=date.fromisoformat)
    parser.add_argument('end_date', type=date.fromisoformat)
    parser.add_argument('--mode', action='append', choices=[mode.value for mode in AppointmentMode])
    args = parser.parse_args(argv)

    logging.basicConfig(level=config.LOG_LEVEL)
    Base.metadata.create_all(bind=engine)

    modes = args.mode or [mode.value for mode in AppointmentMode]
    generator = SlotGenerator(TimeZoneClock(config.BUSINESS_TIMEZONE), closure_day=config.WEEKLY_CLOSURE_DAY)

    db = SessionLocal()
    try:
        ensure_provider(db)
        result = generator.generate(db, args.start_date, args.end_date, modes)
    except SchedulingError as exc:
        print(f"Slot generation failed: {exc}", file=sys.stderr)
        sys.exit(1)
    finally:
        db.close()

    print(f"Created {result.created_count} slots")


if __name__ == "__main__":
    main()
