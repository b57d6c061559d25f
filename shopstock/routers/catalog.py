"""
Catalog API Router

Public read endpoints for the catalog, seller inventories and listings.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from shopstock.errors import ERROR_STOCK_NOT_FOUND
from shopstock.routers.deps import get_stock_queries
from shopstock.routers.models import CatalogEntryResponse, InventoryEntryResponse, ListingResponse
from shopstock.services.domains import StockQueries

router = APIRouter(tags=["catalog"])


@router.get("/api/catalog", response_model=list[CatalogEntryResponse])
async def get_catalog(queries: StockQueries = Depends(get_stock_queries)):
    """Listed catalog entries with units available"""
    entries = await queries.list_catalog()
    return [CatalogEntryResponse.from_entry(e) for e in entries]


@router.get("/api/catalog/{catalog_entry_id}", response_model=CatalogEntryResponse)
async def get_catalog_entry(
    catalog_entry_id: str, queries: StockQueries = Depends(get_stock_queries)
):
    entry = await queries.get_catalog_entry(catalog_entry_id)
    if not entry:
        raise HTTPException(status_code=404, detail=ERROR_STOCK_NOT_FOUND)
    return CatalogEntryResponse.from_entry(entry)


@router.get("/api/inventory/{seller_id}", response_model=list[InventoryEntryResponse])
async def get_inventory(seller_id: str, queries: StockQueries = Depends(get_stock_queries)):
    entries = await queries.get_inventory(seller_id)
    return [InventoryEntryResponse.from_entry(e) for e in entries]


@router.get("/api/sellers/{seller_id}/listings", response_model=list[ListingResponse])
async def get_seller_listings(
    seller_id: str, queries: StockQueries = Depends(get_stock_queries)
):
    listings = await queries.get_seller_listings(seller_id)
    return [ListingResponse.from_listing(listing) for listing in listings]


@router.get("/api/listings", response_model=list[ListingResponse])
async def get_listings(
    product_id: Optional[str] = None, queries: StockQueries = Depends(get_stock_queries)
):
    """Active listings for a product, cheapest first"""
    if not product_id:
        raise HTTPException(status_code=400, detail="product_id is required")
    listings = await queries.get_listings_for_product(product_id)
    return [ListingResponse.from_listing(listing) for listing in listings]
