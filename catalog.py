"""
Storefront catalog reads: categories, products, reviews and the home page.
"""
import re
from typing import Dict, List, Optional

from pymongo import ASCENDING, DESCENDING

from database import DataService
from errors import NotFound, ValidationError
from schemas import Category, HomePage, HomepageContent, Product, Review, ReviewAuthor

PRICE_RANGES = {
    "all": None,
    "under-25": {"$lt": 25},
    "25-50": {"$gte": 25, "$lte": 50},
    "50-100": {"$gte": 50, "$lte": 100},
    "over-100": {"$gt": 100},
}

SORT_ORDERS = {
    "newest": [("created_at", DESCENDING)],
    "price-low": [("price", ASCENDING)],
    "price-high": [("price", DESCENDING)],
    "name": [("name", ASCENDING)],
}

FEATURED_LIMIT = 8
HOME_CATEGORY_LIMIT = 4


def list_categories(data: DataService, limit: Optional[int] = None) -> List[Category]:
    rows = data.select("categories", order=[("display_order", ASCENDING)], limit=limit)
    return [Category(**row) for row in rows]


def list_products(
    data: DataService,
    category_id: Optional[str] = None,
    search: Optional[str] = None,
    price_range: str = "all",
    sort: str = "newest",
) -> List[Product]:
    if price_range not in PRICE_RANGES:
        raise ValidationError(f"Unknown price range '{price_range}'")
    if sort not in SORT_ORDERS:
        raise ValidationError(f"Unknown sort '{sort}'")

    filters: Dict[str, object] = {"is_active": True}
    if category_id and category_id != "all":
        filters["category_id"] = category_id
    if search and search.strip():
        pattern = re.escape(search.strip())
        filters["$or"] = [
            {"name": {"$regex": pattern, "$options": "i"}},
            {"description": {"$regex": pattern, "$options": "i"}},
        ]
    if PRICE_RANGES[price_range]:
        filters["price"] = PRICE_RANGES[price_range]

    return [Product(**row) for row in data.select("products", filters, order=SORT_ORDERS[sort])]


def get_product(data: DataService, product_id: str) -> Product:
    row = data.select_one("products", {"id": product_id})
    if not row:
        raise NotFound("Product not found")
    return Product(**row)


def list_reviews(data: DataService, product_id: str) -> List[Review]:
    """Reviews for a product, newest first, with the reviewer's name and email."""
    rows = data.select("reviews", {"product_id": product_id}, order=[("created_at", DESCENDING)])
    user_ids = list({row["user_id"] for row in rows})
    authors = {}
    if user_ids:
        for profile in data.select("profiles", {"id": {"$in": user_ids}}):
            authors[profile["id"]] = ReviewAuthor(full_name=profile.get("full_name"), email=profile["email"])
    return [Review(**row, user=authors.get(row["user_id"])) for row in rows]


def hero_content(data: DataService) -> Optional[HomepageContent]:
    row = data.select_one("homepage_content", {"section": "hero"})
    return HomepageContent(**row) if row else None


def home_page(data: DataService) -> HomePage:
    hero = hero_content(data)
    featured = data.select(
        "products",
        {"is_featured": True, "is_active": True},
        order=[("created_at", DESCENDING)],
        limit=FEATURED_LIMIT,
    )
    return HomePage(
        hero=hero if hero and hero.is_active else None,
        featured=[Product(**row) for row in featured],
        categories=list_categories(data, limit=HOME_CATEGORY_LIMIT),
    )
