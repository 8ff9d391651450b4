import os
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from pydantic import ValidationError as PydanticValidationError

import admin
import catalog
import orders
from database import DataService, db
from errors import PartialOrder, StoreError
from logging_setup import configure_logging, get_logger
from schemas import (
    AddToCart,
    CartSnapshot,
    Category,
    CheckoutResult,
    Credentials,
    HeroContentIn,
    HomepageContent,
    HomePage,
    Order,
    OrderStatusUpdate,
    OrderWithItems,
    Product,
    ProductIn,
    ProductUpdate,
    Profile,
    QuantityUpdate,
    Review,
    ShippingInfo,
    StoreStats,
    Token,
)
from sessions import SessionRegistry, StoreSession

configure_logging()
logger = get_logger("api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    if db is not None:
        DataService(db).ensure_indexes()
    yield


app = FastAPI(title="Storefront API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")
registry = SessionRegistry()


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    content = {"detail": exc.message}
    if isinstance(exc, PartialOrder):
        content["order_id"] = exc.order_id
        content["order_number"] = exc.order_number
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == status.HTTP_401_UNAUTHORIZED else None
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


# -----------------
# Dependencies
# -----------------
def get_data() -> DataService:
    if db is None:
        raise HTTPException(status_code=500, detail="Database not configured")
    return DataService(db)


def get_registry() -> SessionRegistry:
    return registry


def get_store(
    token: str = Depends(oauth2_scheme),
    data: DataService = Depends(get_data),
    sessions: SessionRegistry = Depends(get_registry),
) -> StoreSession:
    return sessions.resolve(data, token)


def get_admin_store(store: StoreSession = Depends(get_store)) -> StoreSession:
    store.require_admin()
    return store


def _token_for(store: StoreSession) -> Token:
    return Token(access_token=store.auth.access_token, user=store.identity)


@app.get("/")
def read_root():
    return {"name": "Storefront API", "status": "ok"}


@app.get("/test")
def test_database():
    info = {"backend": "running", "database": "not configured"}
    if db is None:
        return info
    try:
        info["collections"] = DataService(db).ping()[:10]
        info["database"] = "connected"
    except StoreError as e:
        info["database"] = "disconnected"
        info["error"] = e.message
    return info


# -----------------
# Auth
# -----------------
@app.post("/auth/register", response_model=Token, status_code=201)
def register(
    credentials: Credentials,
    data: DataService = Depends(get_data),
    sessions: SessionRegistry = Depends(get_registry),
):
    return _token_for(sessions.open(data, credentials, sign_up=True))


@app.post("/auth/token", response_model=Token)
def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    data: DataService = Depends(get_data),
    sessions: SessionRegistry = Depends(get_registry),
):
    try:
        credentials = Credentials(email=form_data.username, password=form_data.password)
    except PydanticValidationError:
        raise HTTPException(status_code=400, detail="Incorrect username or password")
    return _token_for(sessions.open(data, credentials))


@app.post("/auth/logout")
def logout(store: StoreSession = Depends(get_store), sessions: SessionRegistry = Depends(get_registry)):
    sessions.sign_out(store)
    return {"signed_out": True}


@app.get("/me", response_model=Profile)
def me(store: StoreSession = Depends(get_store)):
    return store.auth.profile


# -----------------
# Catalog
# -----------------
@app.get("/home", response_model=HomePage)
def home(data: DataService = Depends(get_data)):
    return catalog.home_page(data)


@app.get("/categories", response_model=List[Category])
def list_categories(data: DataService = Depends(get_data)):
    return catalog.list_categories(data)


@app.get("/products", response_model=List[Product])
def list_products(
    category_id: Optional[str] = None,
    q: Optional[str] = None,
    price_range: str = "all",
    sort: str = "newest",
    data: DataService = Depends(get_data),
):
    return catalog.list_products(data, category_id=category_id, search=q, price_range=price_range, sort=sort)


@app.get("/products/{product_id}", response_model=Product)
def get_product(product_id: str, data: DataService = Depends(get_data)):
    return catalog.get_product(data, product_id)


@app.get("/products/{product_id}/reviews", response_model=List[Review])
def list_reviews(product_id: str, data: DataService = Depends(get_data)):
    return catalog.list_reviews(data, product_id)


# -----------------
# Cart
# -----------------
@app.get("/cart", response_model=CartSnapshot)
def get_cart(store: StoreSession = Depends(get_store)):
    return store.cart.reload()


@app.post("/cart/items", response_model=CartSnapshot)
def add_to_cart(payload: AddToCart, store: StoreSession = Depends(get_store)):
    return store.cart.add(payload.product_id, payload.quantity)


@app.patch("/cart/items/{item_id}", response_model=CartSnapshot)
def update_cart_item(item_id: str, payload: QuantityUpdate, store: StoreSession = Depends(get_store)):
    return store.cart.update_quantity(item_id, payload.quantity)


@app.delete("/cart/items/{item_id}", response_model=CartSnapshot)
def remove_cart_item(item_id: str, store: StoreSession = Depends(get_store)):
    return store.cart.remove(item_id)


# -----------------
# Checkout / Orders
# -----------------
@app.get("/checkout/defaults", response_model=ShippingInfo)
def checkout_defaults(store: StoreSession = Depends(get_store)):
    return store.checkout.checkout_defaults()


@app.post("/checkout", response_model=CheckoutResult, status_code=201)
def checkout(shipping: ShippingInfo, store: StoreSession = Depends(get_store)):
    return store.checkout.submit(shipping)


@app.get("/orders", response_model=List[OrderWithItems])
def my_orders(store: StoreSession = Depends(get_store)):
    return orders.list_orders_for(store.data, store.require_identity().id)


# -----------------
# Admin
# -----------------
@app.get("/admin/orders", response_model=List[OrderWithItems])
def admin_list_orders(store: StoreSession = Depends(get_admin_store)):
    return orders.list_all_orders(store.data)


@app.patch("/admin/orders/{order_id}", response_model=Order)
def admin_update_order(order_id: str, payload: OrderStatusUpdate, store: StoreSession = Depends(get_admin_store)):
    return orders.update_order_status(store.data, order_id, payload.status)


@app.get("/admin/customers", response_model=List[Profile])
def admin_list_customers(store: StoreSession = Depends(get_admin_store)):
    return admin.list_customers(store.data)


@app.get("/admin/content/hero", response_model=Optional[HomepageContent])
def admin_get_hero(store: StoreSession = Depends(get_admin_store)):
    return catalog.hero_content(store.data)


@app.put("/admin/content/hero", response_model=HomepageContent)
def admin_save_hero(payload: HeroContentIn, store: StoreSession = Depends(get_admin_store)):
    return admin.save_hero_content(store.data, payload)


@app.get("/admin/stats", response_model=StoreStats)
def admin_stats(store: StoreSession = Depends(get_admin_store)):
    return admin.store_stats(store.data)


@app.post("/admin/products", response_model=Product, status_code=201)
def admin_create_product(payload: ProductIn, store: StoreSession = Depends(get_admin_store)):
    return admin.create_product(store.data, payload)


@app.patch("/admin/products/{product_id}", response_model=Product)
def admin_update_product(product_id: str, payload: ProductUpdate, store: StoreSession = Depends(get_admin_store)):
    return admin.update_product(store.data, product_id, payload)


@app.delete("/admin/products/{product_id}")
def admin_delete_product(product_id: str, store: StoreSession = Depends(get_admin_store)):
    admin.delete_product(store.data, product_id)
    return {"deleted": True}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
