"""
Stock API Router

Buyer and seller stock movements: catalog purchases and listing management.
Validation failures come back as 200 with success=false; store failures are
mapped to HTTP errors by the app's exception handlers.
"""

from fastapi import APIRouter, Depends

from shopstock.auth import get_caller_id
from shopstock.routers.deps import get_stock_engine
from shopstock.routers.models import (
    CreateListingRequest,
    PurchaseRequest,
    StockResultResponse,
    UpdateListingRequest,
)
from shopstock.services.domains import StockEngine
from shopstock.services.models import ListingUpdate

router = APIRouter(tags=["stock"])


@router.post("/api/stock/purchase", response_model=StockResultResponse)
async def purchase_stock(
    request: PurchaseRequest,
    caller_id: str = Depends(get_caller_id),
    engine: StockEngine = Depends(get_stock_engine),
):
    """Buy units from the platform catalog into the caller's inventory"""
    result = await engine.buy_stock(caller_id, request.catalog_entry_id, request.quantity)
    return StockResultResponse.from_result(result)


@router.post("/api/listings", response_model=StockResultResponse)
async def create_listing(
    request: CreateListingRequest,
    caller_id: str = Depends(get_caller_id),
    engine: StockEngine = Depends(get_stock_engine),
):
    """List inventory units for sale"""
    result = await engine.create_listing(
        caller_id, request.product_id, request.quantity, request.price
    )
    return StockResultResponse.from_result(result)


@router.patch("/api/listings/{listing_id}", response_model=StockResultResponse)
async def update_listing(
    listing_id: str,
    request: UpdateListingRequest,
    caller_id: str = Depends(get_caller_id),
    engine: StockEngine = Depends(get_stock_engine),
):
    update = ListingUpdate(
        price=request.price, quantity=request.quantity, description=request.description
    )
    result = await engine.update_listing(listing_id, caller_id, update)
    return StockResultResponse.from_result(result)


@router.delete("/api/listings/{listing_id}", response_model=StockResultResponse)
async def delete_listing(
    listing_id: str,
    caller_id: str = Depends(get_caller_id),
    engine: StockEngine = Depends(get_stock_engine),
):
    """Withdraw a listing and return its units to inventory"""
    result = await engine.delete_listing(listing_id, caller_id)
    return StockResultResponse.from_result(result)
