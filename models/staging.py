"""
Staging row schemas.

A staging row is one normalized CSV/XLSX line parked under a batch id
until the merge step turns it into a canonical product.
"""

from typing import Any, Optional
from pydantic import Field

from models.base import BaseSchema


# Columns with a dedicated staging field. Every other source column is
# folded into attributes.
STAGING_COLUMNS = (
    "sku",
    "name",
    "description",
    "price",
    "currency",
    "stock",
    "image_url",
    "model_url",
    "categories",
    "attributes",
)


class StagingRow(BaseSchema):
    """
    Loosely-typed intermediate record.

    `price` stays a string ("" when not supplied) so the merge step can
    tell "no price" (cost-plus) apart from "price given" (manual).
    """

    import_batch_id: str = Field(..., min_length=1)
    row_number: int = Field(..., ge=1, description="1-based source row (header is row 1)")

    sku: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    price: str = ""
    currency: Optional[str] = None
    stock: Optional[int] = None
    image_url: Optional[str] = None
    model_url: Optional[str] = None
    categories: str = ""
    attributes: dict[str, Any] = Field(default_factory=dict)

    def to_record(self) -> dict[str, Any]:
        """Dict for the staging_products table."""
        return self.model_dump()
