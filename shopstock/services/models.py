"""Record Models - one pydantic model per stored collection.

Every model carries its collection name as a tag and is validated when a
document is read; documents missing required fields are rejected.
"""
from datetime import datetime
from decimal import Decimal
from typing import ClassVar, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from shopstock.services.money import to_decimal as _to_decimal


class Collections:
    """Collection names. The only durable contract external tooling relies on."""

    CATALOG = "catalog"
    INVENTORY = "inventory"
    LISTINGS = "listings"
    PURCHASES = "purchases"
    USERS = "users"


PLACEHOLDER_IMAGE = "/images/placeholders/t-shirt.svg"


class StoredRecord(BaseModel):
    """Base for documents stored in a collection."""

    collection: ClassVar[str]

    model_config = ConfigDict(extra="ignore")

    id: str

    def to_document(self) -> dict:
        """Serialize to a JSON-compatible document body (id is the document key)."""
        return self.model_dump(mode="json", exclude={"id"})


class CatalogEntry(StoredRecord):
    """Platform-owned stock of one product, keyed by product code."""

    collection: ClassVar[str] = Collections.CATALOG

    product_id: str
    product_code: str
    name: str
    description: str = ""
    price: Decimal = Field(ge=0)
    quantity: int = Field(ge=0)
    quantity_added: int = Field(default=0, ge=0)
    listed: bool = True
    category: str = "general"
    seller_id: Optional[str] = None  # None = platform
    images: list[str] = []
    main_image: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("price", mode="before")
    @classmethod
    def convert_price_to_decimal(cls, v):
        return _to_decimal(v) if v is not None else v

    @property
    def display_image(self) -> str:
        if self.main_image:
            return self.main_image
        return self.images[0] if self.images else PLACEHOLDER_IMAGE


class InventoryEntry(StoredRecord):
    """A seller's private holding of one product."""

    collection: ClassVar[str] = Collections.INVENTORY

    seller_id: str
    product_id: str
    product_code: Optional[str] = None
    name: str
    description: str = ""
    image: str = PLACEHOLDER_IMAGE
    category: str = "general"
    quantity: int = Field(ge=0)
    purchase_price: Decimal = Field(default=Decimal("0"), ge=0)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("purchase_price", mode="before")
    @classmethod
    def convert_purchase_price_to_decimal(cls, v):
        return _to_decimal(v)

    @staticmethod
    def key(seller_id: str, product_id: str) -> str:
        """Document id: one entry per seller per product, partitioned by seller."""
        return f"{seller_id}__{product_id}"


class Listing(StoredRecord):
    """A seller's public offer of inventory units at a price."""

    collection: ClassVar[str] = Collections.LISTINGS

    seller_id: str
    product_id: str
    name: str
    description: str = ""
    image: str = PLACEHOLDER_IMAGE
    category: str = "general"
    quantity: int = Field(ge=0)
    price: Decimal = Field(gt=0)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("price", mode="before")
    @classmethod
    def convert_price_to_decimal(cls, v):
        return _to_decimal(v) if v is not None else v


class LedgerEntry(StoredRecord):
    """Immutable record of one completed catalog purchase."""

    collection: ClassVar[str] = Collections.PURCHASES

    model_config = ConfigDict(extra="ignore", frozen=True)

    user_id: str
    product_id: str
    catalog_entry_id: str
    quantity: int = Field(gt=0)
    unit_price: Decimal
    total_price: Decimal
    created_at: datetime

    @field_validator("unit_price", "total_price", mode="before")
    @classmethod
    def convert_amount_to_decimal(cls, v):
        return _to_decimal(v) if v is not None else v


class UserAccount(StoredRecord):
    """Balance held on the user record."""

    collection: ClassVar[str] = Collections.USERS

    balance: Decimal = Field(ge=0)
    updated_at: Optional[datetime] = None

    @field_validator("balance", mode="before")
    @classmethod
    def convert_balance_to_decimal(cls, v):
        return _to_decimal(v) if v is not None else v


class StockResult(BaseModel):
    """Outcome of an engine operation. Validation failures are results, not errors."""

    success: bool
    message: str
    quantity: int = 0
    total_cost: Decimal = Decimal("0")
    listing_id: Optional[str] = None

    @classmethod
    def ok(
        cls,
        message: str,
        quantity: int = 0,
        total_cost: Decimal = Decimal("0"),
        listing_id: Optional[str] = None,
    ) -> "StockResult":
        return cls(
            success=True,
            message=message,
            quantity=quantity,
            total_cost=total_cost,
            listing_id=listing_id,
        )

    @classmethod
    def fail(cls, message: str, total_cost: Decimal = Decimal("0")) -> "StockResult":
        return cls(success=False, message=message, quantity=0, total_cost=total_cost)


class ListingUpdate(BaseModel):
    """Partial update for a listing."""

    price: Optional[Decimal] = None
    quantity: Optional[int] = None
    description: Optional[str] = None

    @field_validator("price", mode="before")
    @classmethod
    def convert_price_to_decimal(cls, v):
        return _to_decimal(v) if v is not None else None

    @property
    def is_empty(self) -> bool:
        return self.price is None and self.quantity is None and self.description is None


class CatalogUpdate(BaseModel):
    """Admin changes to a catalog entry. Quantity is not editable here; use restock."""

    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[Decimal] = None
    listed: Optional[bool] = None
    category: Optional[str] = None
    images: Optional[list[str]] = None
    main_image: Optional[str] = None

    @field_validator("price", mode="before")
    @classmethod
    def convert_price_to_decimal(cls, v):
        return _to_decimal(v) if v is not None else None

    def changes(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)


class ConservationReport(BaseModel):
    """Unit counts for one product across every ownership state."""

    product_id: str
    catalog_quantity: int
    inventory_quantity: int
    listing_quantity: int
    quantity_added: int

    @property
    def accounted(self) -> int:
        return self.catalog_quantity + self.inventory_quantity + self.listing_quantity

    @property
    def balanced(self) -> bool:
        return self.accounted == self.quantity_added
