# foreclosure_staging/review.py
"""Operator review of staged candidates.

A staging row moves ``pending -> imported`` or ``pending -> ignored`` once and
stays there. Importing flips the status and creates the catalog row in the
same transaction, so a record is either imported with a catalog counterpart
or still pending.
"""
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import crud
from .catalog import Catalog, SqlCatalog
from .errors import CatalogError, NotFound, NotPending, ReviewError, StoreWriteError
from .models import STAGING_IGNORED, STAGING_IMPORTED, STAGING_PENDING, Property, StagingProperty
from .utils import logger, utcnow


@dataclass
class BulkImportResult:
    succeeded: Set[int] = field(default_factory=set)
    failed: Dict[int, str] = field(default_factory=dict)


class ReviewWorkflow:
    def __init__(self, db: Session, catalog: Optional[Catalog] = None):
        self.db = db
        self.catalog = catalog or SqlCatalog(db)

    def list_pending(self, skip: int = 0, limit: Optional[int] = None) -> List[StagingProperty]:
        return crud.list_staging(self.db, STAGING_PENDING, skip=skip, limit=limit)

    def _claim(self, staging_id: int, status: str) -> StagingProperty:
        """Move a pending row to ``status`` inside the current transaction."""
        record = crud.get_staging(self.db, staging_id)
        if record is None:
            raise NotFound(staging_id)
        if record.status != STAGING_PENDING:
            raise NotPending(staging_id, record.status)
        stmt = (
            update(StagingProperty)
            .where(StagingProperty.id == staging_id, StagingProperty.status == STAGING_PENDING)
            .values(status=status, reviewed_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if self.db.execute(stmt).rowcount != 1:
            # someone else decided this record between our read and the update
            self.db.rollback()
            raise NotPending(staging_id)
        return record

    def import_one(self, staging_id: int) -> Property:
        try:
            record = self._claim(staging_id, STAGING_IMPORTED)
            created = self.catalog.create_from_staging(record)
            self.db.commit()
        except ReviewError:
            # a review error raised after _claim must not leave the status flip open
            self.db.rollback()
            raise
        except Exception as exc:
            self.db.rollback()
            logger.error("Import of staging record %s failed: %s", staging_id, exc)
            raise CatalogError(staging_id, f"Staging record {staging_id}: catalog creation failed: {exc}") from exc
        self.db.refresh(record)
        logger.info("Imported staging record %s as property %s", staging_id, created.id)
        return created

    def ignore(self, staging_id: int) -> StagingProperty:
        try:
            record = self._claim(staging_id, STAGING_IGNORED)
            self.db.commit()
        except ReviewError:
            # a review error raised after _claim must not leave the status flip open
            self.db.rollback()
            raise
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StoreWriteError(f"could not ignore staging record {staging_id}: {exc}") from exc
        self.db.refresh(record)
        logger.info("Ignored staging record %s", staging_id)
        return record

    def bulk_import(self, ids: Iterable[int]) -> BulkImportResult:
        result = BulkImportResult()
        for staging_id in dict.fromkeys(ids):
            try:
                self.import_one(staging_id)
            except ReviewError as exc:
                logger.warning("Bulk import: %s", exc)
                result.failed[staging_id] = str(exc) if isinstance(exc, CatalogError) else exc.reason
            else:
                result.succeeded.add(staging_id)
        logger.info("Bulk import finished: %d imported, %d failed", len(result.succeeded), len(result.failed))
        return result
