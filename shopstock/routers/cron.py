"""
Cron job endpoints for scheduled tasks.

Called by Vercel Cron with CRON_SECRET authentication.
"""

from fastapi import APIRouter, Depends

from shopstock.auth import verify_cron_secret
from shopstock.routers.deps import get_stock_engine
from shopstock.services.domains import StockEngine

router = APIRouter(prefix="/api/cron", tags=["cron"], dependencies=[Depends(verify_cron_secret)])


@router.post("/cleanup-listings")
async def cron_cleanup_listings(engine: StockEngine = Depends(get_stock_engine)):
    """
    Remove listings whose quantity reached zero.
    Called by Vercel Cron hourly.
    """
    removed = await engine.cleanup_zero_quantity_listings()
    return {"success": True, "removed": removed}
