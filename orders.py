"""
Order history for shoppers and order management for admins.
"""
from collections import defaultdict
from typing import Any, Dict, List

from pymongo import ASCENDING, DESCENDING

from database import DataService
from errors import NotFound, ValidationError
from logging_setup import get_logger
from schemas import ORDER_STATUSES, Order, OrderItem, OrderWithItems

logger = get_logger("orders")

NEWEST_FIRST = [("created_at", DESCENDING), ("_id", DESCENDING)]


def _with_items(data: DataService, rows: List[Dict[str, Any]]) -> List[OrderWithItems]:
    if not rows:
        return []
    items = defaultdict(list)
    order_ids = [row["id"] for row in rows]
    for item in data.select("order_items", {"order_id": {"$in": order_ids}}, order=[("_id", ASCENDING)]):
        items[item["order_id"]].append(OrderItem(**item))
    return [OrderWithItems(**row, items=items[row["id"]]) for row in rows]


def list_orders_for(data: DataService, user_id: str) -> List[OrderWithItems]:
    return _with_items(data, data.select("orders", {"user_id": user_id}, order=NEWEST_FIRST))


def list_all_orders(data: DataService) -> List[OrderWithItems]:
    return _with_items(data, data.select("orders", order=NEWEST_FIRST))


def update_order_status(data: DataService, order_id: str, status: str) -> Order:
    if status not in ORDER_STATUSES:
        raise ValidationError(f"Unknown order status '{status}'")
    if not data.update("orders", {"status": status}, {"id": order_id}):
        raise NotFound("Order not found")
    logger.info("order_status_updated", order_id=order_id, status=status)
    return Order(**data.select_one("orders", {"id": order_id}))
