# foreclosure_staging/scheduler.py
"""Optional interval runs for every active scraping config."""
from apscheduler.schedulers.background import BackgroundScheduler
from . import crud
from .db import SessionLocal
from .errors import StagingError
from .ingestion import run_ingestion
from .settings import Settings
from .utils import logger

def run_active_configs():
    db = SessionLocal()
    try:
        for config in crud.list_configs(db, active_only=True):
            try:
                result = run_ingestion(db, config.id)
            except StagingError as e:
                logger.warning("Scheduled run for config %s not started: %s", config.id, e)
                continue
            logger.info("Scheduled run for config %s: %d found, %d new", config.id, result.found, result.new)
    finally:
        db.close()

def start_scheduler(app_settings: Settings) -> BackgroundScheduler:
    scheduler = BackgroundScheduler()
    scheduler.add_job(
        run_active_configs, 'interval', hours=app_settings.scheduler_interval_hours,
        id="ingest-active-configs", max_instances=1, coalesce=True,
    )
    scheduler.start()
    logger.info("Scheduler started, every %sh", app_settings.scheduler_interval_hours)
    return scheduler
