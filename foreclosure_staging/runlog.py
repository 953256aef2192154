# foreclosure_staging/runlog.py
"""Append/update-only bookkeeping for ingestion runs.

An entry is created ``running`` and closed exactly once to ``completed`` or
``error``. Closed entries are never touched again.
"""
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import RunLogError, StoreWriteError
from .models import RUN_COMPLETED, RUN_ERROR, RUN_RUNNING, ScrapingLog
from .utils import logger, utcnow


class RunLog:
    def __init__(self, db: Session):
        self.db = db

    def open(self, config_id: int) -> int:
        entry = ScrapingLog(
            config_id=config_id,
            status=RUN_RUNNING,
            started_at=utcnow(),
            properties_found=0,
            properties_new=0,
        )
        try:
            self.db.add(entry)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StoreWriteError(f"could not create run log entry: {exc}") from exc
        logger.info("Opened run log %s for config %s", entry.id, config_id)
        return entry.id

    def close(self, log_id: int, status: str, found: int, new: int, error: Optional[str] = None):
        if status not in (RUN_COMPLETED, RUN_ERROR):
            raise ValueError(f"run log can only be closed as completed or error, not {status!r}")
        stmt = (
            update(ScrapingLog)
            .where(ScrapingLog.id == log_id, ScrapingLog.status == RUN_RUNNING)
            .values(
                status=status,
                finished_at=utcnow(),
                properties_found=found,
                properties_new=new,
                error_message=error,
            )
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.db.execute(stmt)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StoreWriteError(f"could not close run log {log_id}: {exc}") from exc
        if result.rowcount != 1:
            raise RunLogError(f"run log {log_id} is unknown or already closed")
        self.db.expire_all()

    def get(self, log_id: int) -> Optional[ScrapingLog]:
        return self.db.get(ScrapingLog, log_id)

    def running_for(self, config_id: int) -> List[ScrapingLog]:
        q = (
            select(ScrapingLog)
            .where(ScrapingLog.config_id == config_id, ScrapingLog.status == RUN_RUNNING)
            .order_by(ScrapingLog.started_at)
        )
        return list(self.db.scalars(q))

    def recent(self, limit: int = 20, config_id: Optional[int] = None) -> List[ScrapingLog]:
        q = select(ScrapingLog).order_by(ScrapingLog.started_at.desc(), ScrapingLog.id.desc()).limit(limit)
        if config_id is not None:
            q = q.where(ScrapingLog.config_id == config_id)
        return list(self.db.scalars(q))
