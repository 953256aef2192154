# foreclosure_staging/crud.py
"""Persistence helpers for scraping configs, staged candidates and catalog rows.

Status transitions of staging rows and run log entries live in ``review``
and ``runlog``; this module only reads, inserts and does plain updates.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi.encoders import jsonable_encoder
from sqlalchemy import insert, or_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .models import (
    PROPERTY_AVAILABLE, PROPERTY_SOLD, STAGING_PENDING, Property, ScrapingConfig, StagingProperty,
)
from .schemas import CandidateListing
from .utils import utcnow

# -- scraping configs ----------------------------------------------------------

def get_config(db: Session, config_id: int) -> Optional[ScrapingConfig]:
    return db.get(ScrapingConfig, config_id)

def list_configs(db: Session, active_only: bool = False) -> List[ScrapingConfig]:
    q = select(ScrapingConfig).order_by(ScrapingConfig.id)
    if active_only:
        q = q.where(ScrapingConfig.is_active.is_(True))
    return list(db.scalars(q))

def create_config(db: Session, data: Dict[str, Any]) -> ScrapingConfig:
    obj = ScrapingConfig(**data)
    db.add(obj)
    db.commit()
    db.refresh(obj)
    return obj

def touch_config_last_run(db: Session, config_id: int, when: Optional[datetime] = None):
    obj = db.get(ScrapingConfig, config_id)
    if obj is None:
        return None
    obj.last_run_at = when or utcnow()
    db.commit()
    return obj

# -- staging -------------------------------------------------------------------

def staging_exists(db: Session, external_id: str) -> bool:
    q = select(StagingProperty.id).where(StagingProperty.external_id == external_id).limit(1)
    return db.scalar(q) is not None

def _insert_ignoring_conflicts(db: Session, values: Dict[str, Any]) -> Optional[int]:
    table = StagingProperty.__table__
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = pg_insert(table).values(**values).on_conflict_do_nothing(index_elements=["external_id"])
    elif dialect == "sqlite":
        stmt = sqlite_insert(table).values(**values).on_conflict_do_nothing(index_elements=["external_id"])
    else:
        stmt = insert(table).values(**values)
        try:
            return db.execute(stmt.returning(table.c.id)).scalar_one()
        except IntegrityError:
            db.rollback()
            return None
    return db.execute(stmt.returning(table.c.id)).scalar_one_or_none()

def insert_staging(
    db: Session, candidate: CandidateListing, raw: Dict[str, Any], run_id: Optional[int] = None
) -> Optional[int]:
    """Insert a pending staging row unless one already holds ``external_id``.

    Returns the new row id, or None when the unique constraint rejected it.
    The row is written in one statement and committed, so callers never see
    a partially written record.
    """
    values = candidate.model_dump()
    values.update(
        raw_data=jsonable_encoder(raw),
        status=STAGING_PENDING,
        run_id=run_id,
        created_at=utcnow(),
    )
    new_id = _insert_ignoring_conflicts(db, values)
    db.commit()
    return new_id

def get_staging(db: Session, staging_id: int) -> Optional[StagingProperty]:
    return db.get(StagingProperty, staging_id)

def list_staging(db: Session, status: str = STAGING_PENDING, skip: int = 0, limit: Optional[int] = None):
    # oldest first so the review queue drains fairly
    q = (
        select(StagingProperty)
        .where(StagingProperty.status == status)
        .order_by(StagingProperty.created_at, StagingProperty.id)
        .offset(skip)
    )
    if limit is not None:
        q = q.limit(limit)
    return list(db.scalars(q))

# -- catalog -------------------------------------------------------------------

def property_exists(db: Session, external_id: str) -> bool:
    q = select(Property.id).where(Property.external_id == external_id).limit(1)
    return db.scalar(q) is not None

def get_property(db: Session, property_id: int) -> Optional[Property]:
    return db.get(Property, property_id)

def list_properties(db: Session, search: Optional[str] = None, skip: int = 0, limit: int = 50):
    q = select(Property)
    if search:
        term = f"%{search}%"
        conds = [Property.title.ilike(term), Property.address_city.ilike(term), Property.external_id.ilike(term)]
        if search.isdigit():
            conds.append(Property.id == int(search))
        q = q.where(or_(*conds))
    q = q.order_by(Property.created_at.desc(), Property.id.desc()).offset(skip).limit(limit)
    return list(db.scalars(q))

def set_property_status(db: Session, property_id: int, sold: bool) -> Optional[Property]:
    obj = db.get(Property, property_id)
    if not obj:
        return None
    obj.status = PROPERTY_SOLD if sold else PROPERTY_AVAILABLE
    obj.sold_at = utcnow() if sold else None
    db.commit()
    db.refresh(obj)
    return obj
