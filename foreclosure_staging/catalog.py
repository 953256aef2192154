# foreclosure_staging/catalog.py
"""The public catalog, as seen by the staging pipeline.

The pipeline needs two things from it: whether an external id is already
listed, and a way to create a listing from an approved staging row.
"""
from typing import Protocol

from sqlalchemy.orm import Session

from . import crud
from .models import LISTING_FIELDS, PROPERTY_AVAILABLE, Property, StagingProperty


class Catalog(Protocol):
    def exists_by_external_id(self, external_id: str) -> bool:
        ...

    def create_from_staging(self, record: StagingProperty) -> Property:
        """Create the catalog row. Must not commit; the caller owns the transaction."""
        ...


class SqlCatalog:
    """Catalog stored in the ``properties`` table of the same database."""

    def __init__(self, db: Session):
        self.db = db

    def exists_by_external_id(self, external_id: str) -> bool:
        return crud.property_exists(self.db, external_id)

    def create_from_staging(self, record: StagingProperty) -> Property:
        values = {name: getattr(record, name) for name in LISTING_FIELDS}
        obj = Property(
            external_id=record.external_id,
            staging_id=record.id,
            status=PROPERTY_AVAILABLE,
            **values,
        )
        self.db.add(obj)
        # surface unique-constraint violations now, inside the caller's transaction
        self.db.flush()
        return obj
