"""
Stock API Pydantic Models

Request bodies and response shapes shared by the stock routers.
Money leaves the API as float; inside the engine it stays Decimal.
"""
from typing import List, Optional

from pydantic import BaseModel, Field

from shopstock.services.models import CatalogEntry, InventoryEntry, Listing, StockResult
from shopstock.services.money import to_float


# ==================== REQUEST MODELS ====================

class PurchaseRequest(BaseModel):
    catalog_entry_id: str
    quantity: int


class CreateListingRequest(BaseModel):
    product_id: str
    quantity: int
    price: float = Field(allow_inf_nan=False)


class UpdateListingRequest(BaseModel):
    price: Optional[float] = Field(default=None, allow_inf_nan=False)
    quantity: Optional[int] = None
    description: Optional[str] = None


class RestockRequest(BaseModel):
    product_code: str
    quantity: int
    name: str
    price: float = Field(allow_inf_nan=False)
    description: str = ""
    category: str = "general"
    listed: bool = True
    images: Optional[List[str]] = None
    main_image: Optional[str] = None
    product_id: Optional[str] = None


class UpdateCatalogRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = Field(default=None, allow_inf_nan=False)
    listed: Optional[bool] = None
    category: Optional[str] = None
    images: Optional[List[str]] = None
    main_image: Optional[str] = None


class CreditRequest(BaseModel):
    amount: float = Field(allow_inf_nan=False)


# ==================== RESPONSE MODELS ====================

class StockResultResponse(BaseModel):
    success: bool
    message: str
    quantity: int = 0
    total_cost: float = 0
    listing_id: Optional[str] = None

    @classmethod
    def from_result(cls, result: StockResult) -> "StockResultResponse":
        return cls(
            success=result.success,
            message=result.message,
            quantity=result.quantity,
            total_cost=to_float(result.total_cost),
            listing_id=result.listing_id,
        )


class CatalogEntryResponse(BaseModel):
    id: str
    product_id: str
    product_code: str
    name: str
    description: str
    price: float
    quantity: int
    listed: bool
    category: str
    image: str

    @classmethod
    def from_entry(cls, entry: CatalogEntry) -> "CatalogEntryResponse":
        return cls(
            id=entry.id,
            product_id=entry.product_id,
            product_code=entry.product_code,
            name=entry.name,
            description=entry.description,
            price=to_float(entry.price),
            quantity=entry.quantity,
            listed=entry.listed,
            category=entry.category,
            image=entry.display_image,
        )


class InventoryEntryResponse(BaseModel):
    id: str
    seller_id: str
    product_id: str
    name: str
    description: str
    image: str
    category: str
    quantity: int
    purchase_price: float

    @classmethod
    def from_entry(cls, entry: InventoryEntry) -> "InventoryEntryResponse":
        return cls(
            id=entry.id,
            seller_id=entry.seller_id,
            product_id=entry.product_id,
            name=entry.name,
            description=entry.description,
            image=entry.image,
            category=entry.category,
            quantity=entry.quantity,
            purchase_price=to_float(entry.purchase_price),
        )


class ListingResponse(BaseModel):
    id: str
    seller_id: str
    product_id: str
    name: str
    description: str
    image: str
    category: str
    quantity: int
    price: float

    @classmethod
    def from_listing(cls, listing: Listing) -> "ListingResponse":
        return cls(
            id=listing.id,
            seller_id=listing.seller_id,
            product_id=listing.product_id,
            name=listing.name,
            description=listing.description,
            image=listing.image,
            category=listing.category,
            quantity=listing.quantity,
            price=to_float(listing.price),
        )


class ConservationResponse(BaseModel):
    product_id: str
    catalog_quantity: int
    inventory_quantity: int
    listing_quantity: int
    quantity_added: int
    balanced: bool
