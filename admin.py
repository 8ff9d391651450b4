"""
Admin console operations: customers, homepage content, store stats and products.
"""
from typing import List

from pymongo import DESCENDING

from catalog import hero_content
from database import DataService
from errors import NotFound, ValidationError
from logging_setup import get_logger
from schemas import HeroContentIn, HomepageContent, Product, ProductIn, ProductUpdate, Profile, StoreStats

logger = get_logger("admin")


def list_customers(data: DataService) -> List[Profile]:
    rows = data.select("profiles", {"role": "customer"}, order=[("created_at", DESCENDING)])
    return [Profile(**row) for row in rows]


def save_hero_content(data: DataService, content: HeroContentIn) -> HomepageContent:
    """Update the hero section, creating it on first save."""
    existing = hero_content(data)
    payload = content.model_dump()
    if existing:
        data.update("homepage_content", payload, {"id": existing.id})
    else:
        data.insert("homepage_content", {"section": "hero", **payload})
    logger.info("hero_content_saved", created=existing is None)
    return hero_content(data)


def store_stats(data: DataService) -> StoreStats:
    return StoreStats(
        customers=data.count("profiles", {"role": "customer"}),
        products=data.count("products"),
        orders=data.count("orders"),
        pending_orders=data.count("orders", {"status": "pending"}),
    )


def create_product(data: DataService, product: ProductIn) -> Product:
    if data.select_one("products", {"slug": product.slug}):
        raise ValidationError(f"Slug '{product.slug}' is already in use")
    row = data.insert("products", product)
    logger.info("product_created", product_id=row["id"])
    return Product(**row)


def update_product(data: DataService, product_id: str, patch: ProductUpdate) -> Product:
    changes = patch.model_dump(exclude_unset=True)
    if not changes:
        raise ValidationError("Nothing to update")
    if "slug" in changes:
        clash = data.select_one("products", {"slug": changes["slug"], "id": {"$ne": product_id}})
        if clash:
            raise ValidationError(f"Slug '{changes['slug']}' is already in use")
    if not data.update("products", changes, {"id": product_id}):
        raise NotFound("Product not found")
    return Product(**data.select_one("products", {"id": product_id}))


def delete_product(data: DataService, product_id: str) -> None:
    if not data.delete("products", {"id": product_id}):
        raise NotFound("Product not found")
    # carts drop the product, placed orders keep their snapshot
    data.delete("cart_items", {"product_id": product_id})
    data.update("order_items", {"product_id": None}, {"product_id": product_id})
    logger.info("product_deleted", product_id=product_id)
