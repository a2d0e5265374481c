"""
Product Models
Catalog products and the reference photos synced for them.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Integer, ForeignKey
from sqlalchemy.orm import relationship

from studio.core.database import Base


class ProductStatus:
    """Product lifecycle. Only ever advanced forward."""
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class Product(Base):
    """Catalog product."""

    __tablename__ = "products"

    id = Column(String, primary_key=True, default=lambda: f"prod_{uuid.uuid4().hex[:12]}")
    title = Column(String, nullable=False)
    external_id = Column(String, nullable=True, index=True)  # catalog id (ASIN)
    category = Column(String, nullable=True)
    status = Column(String, default=ProductStatus.NOT_STARTED, nullable=False, index=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    reference_assets = relationship(
        "ReferenceAsset",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="ReferenceAsset.position",
    )

    @property
    def identifier(self) -> str:
        """Short label used in logs and job error entries."""
        return self.external_id or self.id[:8]

    def __repr__(self):
        return f"<Product {self.id} ({self.status})>"


class ReferenceAsset(Base):
    """
    Reference photo tied to one product.

    Rows are replaced wholesale when the catalog is re-synced; generated
    artifacts only keep a weak id pointing here.
    """

    __tablename__ = "reference_assets"

    id = Column(String, primary_key=True, default=lambda: f"ref_{uuid.uuid4().hex[:12]}")
    product_id = Column(String, ForeignKey("products.id"), nullable=False, index=True)

    variant = Column(String, nullable=False, default="MAIN", index=True)
    position = Column(Integer, nullable=False, default=0)
    width = Column(Integer, nullable=True)
    height = Column(Integer, nullable=True)

    # Tagged storage location, see studio.services.storage.StorageLocation
    storage_kind = Column(String, nullable=False, default="unset")
    storage_uri = Column(String, nullable=True)
    source_url = Column(String, nullable=True)  # catalog URL

    created_at = Column(DateTime, default=datetime.utcnow)

    product = relationship("Product", back_populates="reference_assets")

    @property
    def resolution(self) -> int:
        return (self.width or 0) * (self.height or 0)

    def __repr__(self):
        return f"<ReferenceAsset {self.id} {self.variant}#{self.position}>"


__all__ = ["ProductStatus", "Product", "ReferenceAsset"]
