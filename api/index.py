"""
shopstock - Main FastAPI Application

Single entry point for the stock API.
Optimized for Vercel serverless functions.
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from shopstock.errors import (
    DocumentValidationError,
    StoreUnavailableError,
    TransactionConflictError,
)
from shopstock.logging import get_logger
from shopstock.routers.admin import router as admin_router
from shopstock.routers.catalog import router as catalog_router
from shopstock.routers.cron import router as cron_router
from shopstock.routers.deps import reset_services
from shopstock.routers.realtime import router as realtime_router
from shopstock.routers.stock import router as stock_router

logger = get_logger(__name__)

# Seconds a client should wait before retrying after a transaction conflict
CONFLICT_RETRY_AFTER_SECS = 1


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler"""
    yield
    reset_services()


app = FastAPI(
    title="shopstock",
    description="Marketplace stock and inventory API",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ==================== STORE ERRORS ====================

@app.exception_handler(TransactionConflictError)
async def transaction_conflict_handler(request: Request, exc: TransactionConflictError):
    logger.warning("Transaction conflict on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=409,
        content={"detail": "Stock changed concurrently, please retry", "retryable": True},
        headers={"Retry-After": str(CONFLICT_RETRY_AFTER_SECS)},
    )


@app.exception_handler(StoreUnavailableError)
async def store_unavailable_handler(request: Request, exc: StoreUnavailableError):
    logger.error("Record store unavailable on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": "Stock service unavailable"})


@app.exception_handler(DocumentValidationError)
async def document_validation_handler(request: Request, exc: DocumentValidationError):
    logger.error("Corrupt document %s/%s: %s", exc.collection, exc.doc_id, exc.detail)
    return JSONResponse(status_code=500, content={"detail": "Stored record is invalid"})


# ==================== ROUTERS ====================

app.include_router(stock_router)
app.include_router(catalog_router)
app.include_router(admin_router, prefix="/api/admin")
app.include_router(cron_router)
app.include_router(realtime_router)


# ==================== HEALTH CHECK ====================

@app.get("/api/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "ok", "service": "shopstock"}
