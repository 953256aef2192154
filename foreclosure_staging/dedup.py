# foreclosure_staging/dedup.py
"""Deduplication gate in front of the staging store.

A candidate is new only when neither the staging table nor the catalog holds
its external id. Lookup failures fail closed. The gate trusts the source to
hand out ids that stay stable across runs; it has no way to notice an
adapter that synthesizes a fresh id for the same listing every time.
"""
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from . import crud
from .catalog import Catalog, SqlCatalog
from .utils import logger


@dataclass(frozen=True)
class DedupVerdict:
    is_new: bool
    error: Optional[str] = None


class DedupGate:
    def __init__(self, db: Session, catalog: Optional[Catalog] = None):
        self.db = db
        self.catalog = catalog or SqlCatalog(db)

    def check(self, external_id: str) -> DedupVerdict:
        if not external_id:
            return DedupVerdict(False, "empty external id")
        try:
            if crud.staging_exists(self.db, external_id):
                return DedupVerdict(False)
            if self.catalog.exists_by_external_id(external_id):
                return DedupVerdict(False)
        except Exception as exc:
            # a failed read leaves the session unusable until rolled back
            self.db.rollback()
            logger.warning("Dedup lookup failed for %s: %s", external_id, exc)
            return DedupVerdict(False, f"lookup failed: {exc}")
        return DedupVerdict(True)

    def is_new(self, external_id: str) -> bool:
        return self.check(external_id).is_new
