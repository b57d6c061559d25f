"""
Common Error Constants and Store Exceptions

Validation outcomes are returned to callers as data (StockResult) using the
message constants below. Exceptions are reserved for failures the caller must
handle differently: retry (conflict) or abort (infrastructure).
"""

# Catalog errors
ERROR_STOCK_NOT_FOUND = "Stock item not found"
ERROR_STOCK_NOT_LISTED = "Stock item is not listed"
ERROR_INSUFFICIENT_STOCK = "Insufficient stock"

# Account errors
ERROR_USER_NOT_FOUND = "User not found"
ERROR_INSUFFICIENT_BALANCE = "Insufficient balance"

# Inventory errors
ERROR_INVENTORY_NOT_FOUND = "Product not found in inventory"
ERROR_INSUFFICIENT_INVENTORY = "Insufficient stock in inventory"

# Listing errors
ERROR_LISTING_NOT_FOUND = "Listing not found"
ERROR_LISTING_NOT_OWNED = "Listing does not belong to seller"

# Input errors
ERROR_INVALID_QUANTITY = "Quantity must be a positive integer"
ERROR_INVALID_PRICE = "Price must be greater than zero"
ERROR_INVALID_AMOUNT = "Amount must be greater than zero"
ERROR_EMPTY_UPDATE = "No changes requested"


class StoreError(Exception):
    """Base class for record store failures."""


class TransactionConflictError(StoreError):
    """Transaction could not commit after repeated optimistic-concurrency retries.

    Retryable: the caller should try again with backoff. Never shown to end
    users as a business error.
    """

    def __init__(self, attempts: int, message: str | None = None) -> None:
        self.attempts = attempts
        super().__init__(message or f"Transaction aborted after {attempts} conflicting attempts")


class StoreUnavailableError(StoreError):
    """Store unreachable or access denied at the transport layer. Not retried."""


class DocumentValidationError(StoreError):
    """A stored document failed validation on read."""

    def __init__(self, collection: str, doc_id: str, detail: str) -> None:
        self.collection = collection
        self.doc_id = doc_id
        self.detail = detail
        super().__init__(f"Invalid document {collection}/{doc_id}: {detail}")


class TransactionUsageError(StoreError):
    """Transaction API misused (read after write, write outside a transaction)."""
