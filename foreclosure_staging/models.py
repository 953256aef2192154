# foreclosure_staging/models.py
"""SQLAlchemy ORM models for persisted entities.

``ScrapingConfig`` and ``ScrapingLog`` describe ingestion runs,
``StagingProperty`` holds scraped candidates awaiting review and
``Property`` is the public catalog that imported candidates land in.
"""
from sqlalchemy import (
    JSON, TIMESTAMP, Boolean, Column, Date, ForeignKey, Index, Integer, Numeric, Text, func,
)
from sqlalchemy.dialects.postgresql import JSONB
from .db import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")

STAGING_PENDING = "pending"
STAGING_IMPORTED = "imported"
STAGING_IGNORED = "ignored"
STAGING_STATUSES = (STAGING_PENDING, STAGING_IMPORTED, STAGING_IGNORED)

RUN_RUNNING = "running"
RUN_COMPLETED = "completed"
RUN_ERROR = "error"
RUN_STATUSES = (RUN_RUNNING, RUN_COMPLETED, RUN_ERROR)

PROPERTY_AVAILABLE = "available"
PROPERTY_SOLD = "sold"


class ScrapingConfig(Base):
    __tablename__ = "scraping_config"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(Text, nullable=False)
    states = Column(JSONType, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    last_run_at = Column(TIMESTAMP(timezone=True))
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())


class ScrapingLog(Base):
    __tablename__ = "scraping_logs"
    id = Column(Integer, primary_key=True, index=True)
    config_id = Column(Integer, ForeignKey("scraping_config.id"), nullable=False, index=True)
    status = Column(Text, nullable=False, default=RUN_RUNNING)
    started_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    finished_at = Column(TIMESTAMP(timezone=True))
    properties_found = Column(Integer, nullable=False, default=0)
    properties_new = Column(Integer, nullable=False, default=0)
    error_message = Column(Text)


class _ListingColumns:
    """Normalized listing projection shared by staging rows and catalog rows."""
    external_id = Column(Text, nullable=False, unique=True, index=True)
    title = Column(Text)
    type = Column(Text)
    price = Column(Numeric)
    original_price = Column(Numeric)
    discount = Column(Numeric)
    address_neighborhood = Column(Text)
    address_city = Column(Text)
    address_state = Column(Text)
    address = Column(Text)
    bedrooms = Column(Integer)
    bathrooms = Column(Integer)
    area = Column(Numeric)
    parking_spaces = Column(Integer)
    images = Column(JSONType, default=list)
    description = Column(Text)
    accepts_fgts = Column(Boolean, default=False)
    accepts_financing = Column(Boolean, default=False)
    modality = Column(Text)
    source_link = Column(Text)
    auction_date = Column(Date)


LISTING_FIELDS = (
    "title", "type", "price", "original_price", "discount",
    "address_neighborhood", "address_city", "address_state", "address",
    "bedrooms", "bathrooms", "area", "parking_spaces", "images", "description",
    "accepts_fgts", "accepts_financing", "modality", "source_link", "auction_date",
)


class StagingProperty(_ListingColumns, Base):
    __tablename__ = "staging_properties"
    id = Column(Integer, primary_key=True, index=True)
    raw_data = Column(JSONType, nullable=False)
    status = Column(Text, nullable=False, default=STAGING_PENDING, index=True)
    run_id = Column(Integer, ForeignKey("scraping_logs.id"))
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    reviewed_at = Column(TIMESTAMP(timezone=True))


class Property(_ListingColumns, Base):
    __tablename__ = "properties"
    id = Column(Integer, primary_key=True, index=True)
    staging_id = Column(Integer, ForeignKey("staging_properties.id"), unique=True)
    status = Column(Text, nullable=False, default=PROPERTY_AVAILABLE)
    sold_at = Column(TIMESTAMP(timezone=True))
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now())

Index("idx_staging_status_created", StagingProperty.status, StagingProperty.created_at)
Index("idx_logs_config_status", ScrapingLog.config_id, ScrapingLog.status)
