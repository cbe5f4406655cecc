import logging
from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator
from storefront.version import VERSION
from storefront.core.config import settings
from storefront.core.errors import install_handlers
from storefront.api import (
    auth, users, categories, products, cart, wishlist, orders, tracking, payments, coupons, reviews, returns,
)

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

instrumentator = Instrumentator()

app = FastAPI(title="Storefront", version=VERSION)

# instrument before routes are added
instrumentator.instrument(app).expose(app, include_in_schema=False, endpoint="/metrics", should_gzip=True)

install_handlers(app)

@app.get("/health")
def health(): return {"status": "ok"}

@app.get("/v1/_info")
def info(): return {"service": "storefront", "version": VERSION}

app.include_router(auth.router, prefix="/auth", tags=["auth"])
app.include_router(users.router, prefix="/users", tags=["users"])
app.include_router(categories.router, prefix="/catalog/v1/categories", tags=["categories"])
app.include_router(products.router, prefix="/catalog/v1/products", tags=["products"])
app.include_router(cart.router, prefix="/cart", tags=["cart"])
app.include_router(wishlist.router, prefix="/wishlist", tags=["wishlist"])
app.include_router(orders.router, prefix="/orders", tags=["orders"])
app.include_router(tracking.router, tags=["tracking"])
app.include_router(payments.router, prefix="/payments", tags=["payments"])
app.include_router(coupons.router, prefix="/coupons", tags=["coupons"])
app.include_router(reviews.router, prefix="/reviews", tags=["reviews"])
app.include_router(returns.router, prefix="/returns", tags=["returns"])
