"""
SQLAlchemy ORM Models
eSIM Catalog Normalization & Auto-Selection
"""

from sqlalchemy import (
    Column, Integer, String, Text, Boolean,
    DateTime, ForeignKey, JSON, Index
)
from sqlalchemy.orm import relationship, declarative_base
from datetime import datetime

from config.settings import settings

Base = declarative_base()


# ─── Reference Data ──────────────────────────────────────────────────────────


class Provider(Base):
    __tablename__ = "providers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(100), nullable=False, unique=True)  # airalo, esim-go, esim-access, maya
    api_base_url = Column(String(500))
    enabled = Column(Boolean, nullable=False, default=False)
    is_preferred = Column(Boolean, nullable=False, default=False)
    pricing_margin = Column(String(20), nullable=False, default=settings.DEFAULT_PROVIDER_MARGIN)  # percent
    sync_interval_minutes = Column(Integer, nullable=False, default=60)
    last_sync_at = Column(DateTime)
    failover_priority = Column(Integer, nullable=False, default=100)
    min_margin_percent = Column(String(20), default="0")
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    unified_packages = relationship("UnifiedPackage", back_populates="provider")


class Destination(Base):
    __tablename__ = "destinations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False, unique=True)
    country_code = Column(String(2), unique=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class Region(Base):
    __tablename__ = "regions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False, unique=True)
    created_at = Column(DateTime, default=datetime.utcnow)


# ─── Provider Package Tables ─────────────────────────────────────────────────
# Written by the provider API clients; read-only for the catalog pipeline.


class ProviderPackageMixin:
    id = Column(Integer, primary_key=True, autoincrement=True)
    slug = Column(String(255), nullable=False)
    title = Column(String(500), nullable=False)
    data_amount = Column(String(100), nullable=False)  # "1GB", "500 MB", "Unlimited"
    validity = Column(Integer, nullable=False)  # days
    currency = Column(String(10), nullable=False, default="USD")
    type = Column(String(20), nullable=False)  # local, regional, global
    operator = Column(String(255))
    operator_image = Column(String(1000))
    coverage = Column(JSON)
    voice_credits = Column(Integer, default=0)
    sms_credits = Column(Integer, default=0)
    is_unlimited = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class AiraloPackage(ProviderPackageMixin, Base):
    __tablename__ = "airalo_packages"

    provider_id = Column(Integer, ForeignKey("providers.id"))
    destination_id = Column(Integer, ForeignKey("destinations.id"))
    region_id = Column(Integer, ForeignKey("regions.id"))
    airalo_id = Column(String(255), nullable=False, unique=True)
    airalo_price = Column(String(20))  # nullable for legacy rows
    price = Column(String(20), nullable=False)


class EsimAccessPackage(ProviderPackageMixin, Base):
    __tablename__ = "esim_access_packages"

    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=False)
    destination_id = Column(Integer, ForeignKey("destinations.id"))
    region_id = Column(Integer, ForeignKey("regions.id"))
    esim_access_id = Column(String(255), nullable=False, unique=True)
    wholesale_price = Column(String(20), nullable=False)


class EsimGoPackage(ProviderPackageMixin, Base):
    __tablename__ = "esim_go_packages"

    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=False)
    destination_id = Column(Integer, ForeignKey("destinations.id"))
    region_id = Column(Integer, ForeignKey("regions.id"))
    esim_go_id = Column(String(255), nullable=False, unique=True)
    wholesale_price = Column(String(20), nullable=False)
    can_topup = Column(Boolean, nullable=False, default=True)


class MayaPackage(ProviderPackageMixin, Base):
    __tablename__ = "maya_packages"

    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=False)
    destination_id = Column(Integer, ForeignKey("destinations.id"))
    region_id = Column(Integer, ForeignKey("regions.id"))
    maya_id = Column(String(255), nullable=False, unique=True)  # Maya product UID
    wholesale_price = Column(String(20), nullable=False)
    data_mb = Column(Integer)


# ─── Unified Catalog ─────────────────────────────────────────────────────────


class UnifiedPackage(Base):
    __tablename__ = "unified_packages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=False)
    provider_package_table = Column(String(100), nullable=False)
    provider_package_id = Column(String(255), nullable=False)

    destination_id = Column(Integer, ForeignKey("destinations.id"))
    region_id = Column(Integer, ForeignKey("regions.id"))

    slug = Column(String(255), nullable=False)
    title = Column(String(500), nullable=False)
    data_amount = Column(String(100), nullable=False)
    validity = Column(Integer, nullable=False)
    type = Column(String(20), nullable=False)
    wholesale_price = Column(String(20), nullable=False)
    retail_price = Column(String(20), nullable=False)
    currency = Column(String(10), nullable=False, default="USD")
    operator = Column(String(255))
    operator_image = Column(String(1000))
    coverage = Column(JSON)
    voice_credits = Column(Integer, default=0)
    sms_credits = Column(Integer, default=0)
    is_unlimited = Column(Boolean, nullable=False, default=False)

    # Normalized fields
    data_mb = Column(Integer)  # NULL means unlimited
    validity_days = Column(Integer)
    voice_minutes = Column(Integer)
    sms_count = Column(Integer)

    country_code = Column(String(2))
    country_name = Column(String(255))
    package_group_key = Column(String(255))  # NULL when the country is unresolved

    is_enabled = Column(Boolean, nullable=False, default=False)
    is_best_price = Column(Boolean, nullable=False, default=False)
    manual_override = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow)

    provider = relationship("Provider", back_populates="unified_packages")
    destination = relationship("Destination")
    region = relationship("Region")

    __table_args__ = (
        Index("ix_unified_source", "provider_package_table", "provider_package_id", unique=True),
        Index("ix_unified_retail_price", "retail_price"),
        Index("ix_unified_data_mb", "data_mb"),
        Index("ix_unified_validity_days", "validity_days"),
        Index("ix_unified_destination", "destination_id"),
        Index("ix_unified_region", "region_id"),
        Index("ix_unified_type", "type"),
        Index("ix_unified_is_enabled", "is_enabled"),
        Index("ix_unified_country_code", "country_code"),
        Index("ix_unified_group_key", "package_group_key"),
    )


# ─── Platform Settings ───────────────────────────────────────────────────────


class PlatformSetting(Base):
    __tablename__ = "platform_settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    key = Column(String(255), nullable=False, unique=True)
    value = Column(Text, nullable=False)
    description = Column(Text)
    category = Column(String(100), default="general")
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
