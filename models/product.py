"""
Product schemas for the canonical catalog.
"""

from typing import Any, Optional
from pydantic import Field, field_validator

from models.base import BaseSchema
from models.pricing import PricingMethod


class ProductRecord(BaseSchema):
    """
    Canonical product row as stored in `products`.

    Keyed by unique sku; id is assigned by the database.
    """

    id: Optional[int] = None
    sku: str = Field(..., min_length=1, max_length=100)
    name: str = ""
    description: Optional[str] = None
    price: Optional[float] = None
    currency: str = "UAH"
    stock: int = 0
    attributes: dict[str, Any] = Field(default_factory=dict)
    pricing_method: PricingMethod = PricingMethod.MANUAL
    pricing: Optional[dict[str, Any]] = None
    image_url: Optional[str] = None

    @field_validator("attributes", mode="before")
    @classmethod
    def attributes_default(cls, v: Any) -> Any:
        """Stored NULL attributes behave like an empty map."""
        return v if v is not None else {}

    @field_validator("stock", mode="before")
    @classmethod
    def stock_default(cls, v: Any) -> Any:
        return v if v is not None else 0


class CategoryRecord(BaseSchema):
    """Category looked up by slug."""
    id: int
    slug: str
    name: Optional[str] = None


class ProductImageRecord(BaseSchema):
    """One gallery entry; (product_id, url) is unique."""
    id: Optional[int] = None
    product_id: int
    url: str
    idx: int = 0
