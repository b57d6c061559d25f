"""
Admin Stock Router

Catalog restocking and edits, balance credits and the conservation audit.
All endpoints require the X-Admin-Key header.
"""

from fastapi import APIRouter, Depends

from shopstock.auth import verify_admin_key
from shopstock.routers.deps import get_stock_engine, get_stock_queries
from shopstock.routers.models import (
    ConservationResponse,
    CreditRequest,
    RestockRequest,
    StockResultResponse,
    UpdateCatalogRequest,
)
from shopstock.services.domains import StockEngine, StockQueries
from shopstock.services.models import CatalogUpdate

router = APIRouter(tags=["admin"], dependencies=[Depends(verify_admin_key)])


@router.post("/catalog/restock", response_model=StockResultResponse)
async def admin_restock(
    request: RestockRequest, engine: StockEngine = Depends(get_stock_engine)
):
    """Add units to a catalog entry, creating it on first restock"""
    result = await engine.restock(**request.model_dump())
    return StockResultResponse.from_result(result)


@router.patch("/catalog/{catalog_entry_id}", response_model=StockResultResponse)
async def admin_update_catalog(
    catalog_entry_id: str,
    request: UpdateCatalogRequest,
    engine: StockEngine = Depends(get_stock_engine),
):
    update = CatalogUpdate(**request.model_dump(exclude_none=True))
    result = await engine.update_catalog_entry(catalog_entry_id, update)
    return StockResultResponse.from_result(result)


@router.post("/accounts/{user_id}/credit", response_model=StockResultResponse)
async def admin_credit_account(
    user_id: str, request: CreditRequest, engine: StockEngine = Depends(get_stock_engine)
):
    result = await engine.credit_account(user_id, request.amount)
    return StockResultResponse.from_result(result)


@router.get("/catalog/{product_id}/audit", response_model=ConservationResponse)
async def admin_audit_product(
    product_id: str, queries: StockQueries = Depends(get_stock_queries)
):
    """Unit counts for a product across catalog, inventories and listings"""
    report = await queries.audit_conservation(product_id)
    return ConservationResponse(**report.model_dump(), balanced=report.balanced)
