import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

log = logging.getLogger(__name__)

class StorefrontError(Exception):
    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

class OrderError(StorefrontError):
    """Checkout rejected because of the request or catalog state; nothing was written."""
    status_code = 400
    code = "ORDER_REJECTED"

class ProductUnavailable(OrderError):
    code = "PRODUCT_UNAVAILABLE"

    def __init__(self, product_id: int):
        super().__init__(f"Product {product_id} not found or inactive")
        self.product_id = product_id

class InvalidSize(OrderError):
    code = "INVALID_SIZE"

    def __init__(self, size: str, product_name: str):
        super().__init__(f"Invalid size {size} for {product_name}")
        self.size = size

class InsufficientStock(OrderError):
    code = "INSUFFICIENT_STOCK"

    def __init__(self, product_name: str, available: int, requested: int, size: str | None = None):
        if size:
            msg = f"Insufficient stock for size {size} of {product_name}. Available: {available}, Requested: {requested}"
        else:
            msg = f"Insufficient stock for {product_name}. Available: {available}, Requested: {requested}"
        super().__init__(msg)
        self.product_name = product_name
        self.available = available
        self.requested = requested
        self.size = size

class InvalidTransition(OrderError):
    status_code = 409
    code = "INVALID_STATUS_TRANSITION"

    def __init__(self, current, requested):
        super().__init__(f"Cannot change order status from {current.value} to {requested.value}")

class TransactionFault(StorefrontError):
    """Timeouts and storage failures inside a transaction; reported as 500."""
    status_code = 500
    code = "TRANSACTION_FAILED"

def install_handlers(app: FastAPI):
    @app.exception_handler(StorefrontError)
    async def _storefront_error(request: Request, exc: StorefrontError):
        if exc.status_code >= 500:
            log.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "code": exc.code})
