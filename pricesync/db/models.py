"""SQLAlchemy database models."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from pricesync.db.encryption import EncryptedString


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class Supplier(Base):
    """A price source."""

    __tablename__ = "suppliers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    contact_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    contact_phone: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # Feed credentials
    api_endpoint: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    api_key: Mapped[Optional[str]] = mapped_column(EncryptedString(512), nullable=True)
    api_parameters: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    website_login: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    website_password: Mapped[Optional[str]] = mapped_column(EncryptedString(512), nullable=True)

    # Behaviour flags
    name_comparison_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    auto_name_update: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    one_by_one_mode: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    upload_to_all_marketplaces: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    sandbox_mode: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    products: Mapped[list["Product"]] = relationship(
        "Product", back_populates="supplier", cascade="all, delete-orphan", passive_deletes=True
    )


class Marketplace(Base):
    """A price destination (marketplace seller account)."""

    __tablename__ = "marketplaces"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    website: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    api_key: Mapped[Optional[str]] = mapped_column(EncryptedString(512), nullable=True)
    api_endpoint: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    api_parameters: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    login: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    password: Mapped[Optional[str]] = mapped_column(EncryptedString(512), nullable=True)

    # Default pricing rule for products that do not override it
    pricing_action: Mapped[str] = mapped_column(String(16), default="multiply", nullable=False)
    pricing_value: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("1.0"), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    sandbox_mode: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    __table_args__ = (
        CheckConstraint("pricing_action IN ('add', 'multiply')", name="ck_marketplace_pricing_action"),
    )


class Product(Base):
    """One supplier item, optionally linked to a marketplace listing."""

    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    supplier_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("suppliers.id", ondelete="CASCADE"), nullable=True, index=True
    )
    supplier_article: Mapped[str] = mapped_column(String(128), nullable=False)
    marketplace_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("marketplaces.id", ondelete="SET NULL"), nullable=True, index=True
    )
    marketplace_article: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, index=True)

    name_supplier: Mapped[str] = mapped_column(Text, nullable=False)
    name_marketplace: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    current_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    new_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    price_status: Mapped[str] = mapped_column(String(16), default="unchanged", nullable=False)
    pricing_action: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    pricing_value: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 4), nullable=True)

    name_comparison_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    auto_name_update: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Catalog card used when the product is submitted to a marketplace
    brand: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    category_code: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    image_urls: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    attributes: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)  # [{"code": .., "value": ..}]

    last_updated: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    supplier: Mapped[Optional["Supplier"]] = relationship("Supplier", back_populates="products")

    __table_args__ = (
        CheckConstraint(
            "price_status IN ('increased', 'decreased', 'unchanged', 'missing')",
            name="ck_product_price_status",
        ),
        CheckConstraint(
            "pricing_action IS NULL OR pricing_action IN ('add', 'multiply')",
            name="ck_product_pricing_action",
        ),
    )


class SupplierCustomization(Base):
    """Per supplier/marketplace enable switch."""

    __tablename__ = "supplier_customizations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    supplier_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("suppliers.id", ondelete="CASCADE"), nullable=False
    )
    marketplace_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("marketplaces.id", ondelete="CASCADE"), nullable=False
    )
    is_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("supplier_id", "marketplace_id", name="uq_supplier_marketplace"),
    )


class AutomationSettings(Base):
    """Singleton automation configuration."""

    __tablename__ = "automation_settings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    auto_mode_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    sync_interval_minutes: Mapped[int] = mapped_column(Integer, default=60, nullable=False)
    sync_period: Mapped[str] = mapped_column(String(32), default="business_hours", nullable=False)
    max_requests_per_day: Mapped[int] = mapped_column(Integer, default=1000, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )


class StorageSettings(Base):
    """Where and how exported price lists are stored."""

    __tablename__ = "storage_settings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    storage_type: Mapped[str] = mapped_column(String(32), default="local", nullable=False)
    storage_login: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    storage_password: Mapped[Optional[str]] = mapped_column(EncryptedString(512), nullable=True)
    file_format: Mapped[str] = mapped_column(String(8), default="xlsx", nullable=False)
    storage_path: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )


class SandboxSettings(Base):
    """Per-user sandbox configuration and test request counter."""

    __tablename__ = "sandbox_settings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    is_sandbox_mode: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    test_supplier_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("suppliers.id", ondelete="SET NULL"), nullable=True
    )
    test_marketplace_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("marketplaces.id", ondelete="SET NULL"), nullable=True
    )
    max_test_requests: Mapped[int] = mapped_column(Integer, default=100, nullable=False)
    test_requests_used: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )


class SyncRunRecord(Base):
    """Outcome of a finished download or upload run."""

    __tablename__ = "sync_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    run_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    kind: Mapped[str] = mapped_column(String(16), nullable=False)  # download | upload
    trigger: Mapped[str] = mapped_column(String(16), default="manual", nullable=False)  # manual | scheduled | sandbox
    status: Mapped[str] = mapped_column(String(16), nullable=False)  # completed | cancelled
    user_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    total_steps: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    completed_steps: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    error_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    progress_percent: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    steps: Mapped[list] = mapped_column(JSON, default=list, nullable=False)

    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    finished_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
