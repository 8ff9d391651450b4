"""
Data schemas for the storefront

Each row model mirrors a MongoDB collection used by DataService:
- profiles: customers and admins (password_hash is stored but never exposed)
- categories, products, reviews: the catalog
- cart_items: one row per (user_id, product_id)
- orders, order_items: placed orders and their immutable item snapshots
- homepage_content: editable homepage sections (hero)
"""
from datetime import datetime
from typing import List, Literal, Optional, get_args

from pydantic import BaseModel, EmailStr, Field

Role = Literal["customer", "admin"]
OrderStatus = Literal["pending", "processing", "shipped", "delivered", "canceled"]
PaymentMethod = Literal["cash_on_delivery", "credit_card", "paypal"]

ORDER_STATUSES = get_args(OrderStatus)


# -----------------------------
# Identity / Profiles
# -----------------------------
class Identity(BaseModel):
    id: str
    email: str
    role: Role = "customer"


class Profile(BaseModel):
    id: str
    email: str
    full_name: Optional[str] = None
    role: Role = "customer"
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Credentials(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)
    full_name: Optional[str] = None


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: Identity


# -----------------------------
# Catalog
# -----------------------------
class Category(BaseModel):
    id: str
    name: str
    slug: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    display_order: int = 0


class Product(BaseModel):
    id: str
    category_id: Optional[str] = None
    name: str
    slug: str
    description: Optional[str] = None
    price: float = Field(..., ge=0)
    compare_at_price: Optional[float] = None
    stock: int = Field(0, ge=0)
    image_url: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    is_featured: bool = False
    is_active: bool = True
    created_at: Optional[datetime] = None


class ProductIn(BaseModel):
    category_id: Optional[str] = None
    name: str = Field(..., min_length=1)
    slug: str = Field(..., min_length=1)
    description: Optional[str] = None
    price: float = Field(..., ge=0)
    compare_at_price: Optional[float] = Field(None, ge=0)
    stock: int = Field(0, ge=0)
    image_url: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    is_featured: bool = False
    is_active: bool = True


class ProductUpdate(BaseModel):
    category_id: Optional[str] = None
    name: Optional[str] = Field(None, min_length=1)
    slug: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    compare_at_price: Optional[float] = Field(None, ge=0)
    stock: Optional[int] = Field(None, ge=0)
    image_url: Optional[str] = None
    images: Optional[List[str]] = None
    is_featured: Optional[bool] = None
    is_active: Optional[bool] = None


class ReviewAuthor(BaseModel):
    full_name: Optional[str] = None
    email: str


class Review(BaseModel):
    id: str
    product_id: str
    user_id: str
    rating: int = Field(..., ge=1, le=5)
    title: Optional[str] = None
    comment: Optional[str] = None
    created_at: Optional[datetime] = None
    user: Optional[ReviewAuthor] = None


# -----------------------------
# Homepage content
# -----------------------------
class HomepageContent(BaseModel):
    id: str
    section: str
    title: Optional[str] = None
    subtitle: Optional[str] = None
    image_url: Optional[str] = None
    button_text: Optional[str] = None
    button_link: Optional[str] = None
    is_active: bool = True
    updated_at: Optional[datetime] = None


class HeroContentIn(BaseModel):
    title: Optional[str] = None
    subtitle: Optional[str] = None
    image_url: Optional[str] = None
    button_text: Optional[str] = None
    button_link: Optional[str] = None
    is_active: bool = True


class HomePage(BaseModel):
    hero: Optional[HomepageContent] = None
    featured: List[Product] = Field(default_factory=list)
    categories: List[Category] = Field(default_factory=list)


# -----------------------------
# Cart
# -----------------------------
class CartItem(BaseModel):
    id: str
    user_id: str
    product_id: str
    quantity: int = Field(..., ge=1)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    product: Optional[Product] = None


class CartSnapshot(BaseModel):
    items: List[CartItem] = Field(default_factory=list)
    count: int = 0
    total: float = 0.0


class AddToCart(BaseModel):
    product_id: str
    quantity: int = 1


class QuantityUpdate(BaseModel):
    quantity: int


# -----------------------------
# Orders / Checkout
# -----------------------------
class ShippingInfo(BaseModel):
    full_name: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""
    city: str = ""
    postal_code: str = ""
    country: str = ""
    payment_method: PaymentMethod = "cash_on_delivery"
    notes: str = ""


class Order(BaseModel):
    id: str
    user_id: Optional[str] = None
    order_number: str
    status: OrderStatus = "pending"
    total_amount: float = Field(..., ge=0)
    shipping_name: str
    shipping_email: str
    shipping_phone: Optional[str] = None
    shipping_address: str
    shipping_city: str
    shipping_postal_code: str
    shipping_country: str
    payment_method: str
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class OrderItem(BaseModel):
    id: str
    order_id: str
    product_id: Optional[str] = None
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0)
    product_name: str
    product_image: Optional[str] = None


class OrderWithItems(Order):
    items: List[OrderItem] = Field(default_factory=list)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class CheckoutResult(BaseModel):
    order_id: str
    order_number: str
    total_amount: float
    status: OrderStatus = "pending"


class StoreStats(BaseModel):
    customers: int
    products: int
    orders: int
    pending_orders: int
