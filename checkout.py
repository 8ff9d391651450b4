"""
CheckoutSequencer: turns the cart into an order, its items, and an empty cart.

One attempt runs strictly in order:

    idle -> validating -> placing_order -> placing_items -> clearing_cart -> done

and stops in failed, order_failed or items_failed when a step does not
succeed. items_failed leaves a pending order without items behind
(PartialOrder); nothing rolls it back. A failed cart clear does not undo a
placed order.
"""
import secrets
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from auth import SessionProvider
from cart import CartManager
from database import DataService
from errors import CheckoutInProgress, PartialOrder, RemoteFailure, StoreError, ValidationError
from logging_setup import get_logger
from schemas import CartItem, CheckoutResult, Profile, ShippingInfo

logger = get_logger("checkout")


class CheckoutState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    FAILED = "failed"
    PLACING_ORDER = "placing_order"
    ORDER_FAILED = "order_failed"
    PLACING_ITEMS = "placing_items"
    ITEMS_FAILED = "items_failed"
    CLEARING_CART = "clearing_cart"
    DONE = "done"


TRANSITIONS = {
    CheckoutState.IDLE: {CheckoutState.VALIDATING},
    CheckoutState.VALIDATING: {CheckoutState.FAILED, CheckoutState.PLACING_ORDER},
    CheckoutState.PLACING_ORDER: {CheckoutState.ORDER_FAILED, CheckoutState.PLACING_ITEMS},
    CheckoutState.PLACING_ITEMS: {CheckoutState.ITEMS_FAILED, CheckoutState.CLEARING_CART},
    CheckoutState.CLEARING_CART: {CheckoutState.DONE},
}

TERMINAL_STATES = frozenset(
    {CheckoutState.FAILED, CheckoutState.ORDER_FAILED, CheckoutState.ITEMS_FAILED, CheckoutState.DONE}
)

REQUIRED_FIELDS = {
    "full_name": "Full name",
    "email": "Email",
    "address": "Address",
    "city": "City",
    "postal_code": "Postal code",
    "country": "Country",
}

_email_adapter = TypeAdapter(EmailStr)


@dataclass
class CheckoutAttempt:
    state: CheckoutState = CheckoutState.IDLE
    history: List[CheckoutState] = field(default_factory=lambda: [CheckoutState.IDLE])
    order_id: Optional[str] = None
    order_number: Optional[str] = None
    error: Optional[StoreError] = None

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES

    def advance(self, state: CheckoutState) -> None:
        if state not in TRANSITIONS.get(self.state, ()):
            raise RuntimeError(f"Illegal checkout transition {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)


def generate_order_number() -> str:
    """Millisecond timestamp plus random hex, e.g. ORD-1760790000000-3FA2C1."""
    return f"ORD-{int(time.time() * 1000)}-{secrets.token_hex(3).upper()}"


def validate_shipping(shipping: ShippingInfo) -> None:
    problems = [
        f"{label} is required"
        for name, label in REQUIRED_FIELDS.items()
        if not getattr(shipping, name).strip()
    ]
    if shipping.email.strip():
        try:
            _email_adapter.validate_python(shipping.email.strip())
        except PydanticValidationError:
            problems.append("Email is not a valid address")
    if problems:
        raise ValidationError("; ".join(problems))


def validate_availability(items: Sequence[CartItem]) -> None:
    """Reject a cart holding products that are gone or no longer in stock."""
    problems = []
    for item in items:
        if item.product is None:
            problems.append("A product in your cart is no longer available")
        elif item.quantity > item.product.stock:
            problems.append(f"{item.product.name} is out of stock")
    if problems:
        raise ValidationError("; ".join(problems))


def with_profile_defaults(shipping: ShippingInfo, profile: Optional[Profile]) -> ShippingInfo:
    """Fill blank shipping fields from the shopper's profile."""
    if profile is None:
        return shipping
    defaults = {
        "full_name": profile.full_name,
        "email": profile.email,
        "phone": profile.phone,
        "address": profile.address,
        "city": profile.city,
        "postal_code": profile.postal_code,
        "country": profile.country,
    }
    updates = {
        name: value
        for name, value in defaults.items()
        if value and not getattr(shipping, name).strip()
    }
    return shipping.model_copy(update=updates)


class CheckoutSequencer:
    def __init__(self, data: DataService, cart: CartManager, session: SessionProvider):
        self._data = data
        self._cart = cart
        self._session = session
        self._guard = threading.Lock()
        self._last_attempt: Optional[CheckoutAttempt] = None

    @property
    def last_attempt(self) -> Optional[CheckoutAttempt]:
        return self._last_attempt

    @property
    def in_progress(self) -> bool:
        return self._guard.locked()

    def checkout_defaults(self) -> ShippingInfo:
        return with_profile_defaults(ShippingInfo(), self._session.profile)

    def submit(self, shipping: ShippingInfo) -> CheckoutResult:
        # a second submit while one is running is rejected, never queued
        if not self._guard.acquire(blocking=False):
            identity = self._cart.identity
            logger.warning("checkout_rejected", reason="in_progress", user_id=identity.id if identity else None)
            raise CheckoutInProgress()
        attempt = CheckoutAttempt()
        self._last_attempt = attempt
        try:
            return self._run(attempt, shipping)
        finally:
            self._guard.release()

    def _run(self, attempt: CheckoutAttempt, shipping: ShippingInfo) -> CheckoutResult:
        self._move(attempt, CheckoutState.VALIDATING)
        try:
            snapshot = self._cart.reload()
            shipping = with_profile_defaults(shipping, self._session.profile)
            if not snapshot.items:
                raise ValidationError("Your cart is empty")
            validate_availability(snapshot.items)
            validate_shipping(shipping)
        except StoreError as e:
            self._fail(attempt, CheckoutState.FAILED, e)
            raise

        identity = self._cart.identity
        attempt.order_number = generate_order_number()
        self._move(attempt, CheckoutState.PLACING_ORDER)
        try:
            order = self._data.insert(
                "orders",
                {
                    "user_id": identity.id if identity else None,
                    "order_number": attempt.order_number,
                    "status": "pending",
                    "total_amount": snapshot.total,
                    "shipping_name": shipping.full_name.strip(),
                    "shipping_email": shipping.email.strip(),
                    "shipping_phone": shipping.phone.strip() or None,
                    "shipping_address": shipping.address.strip(),
                    "shipping_city": shipping.city.strip(),
                    "shipping_postal_code": shipping.postal_code.strip(),
                    "shipping_country": shipping.country.strip(),
                    "payment_method": shipping.payment_method,
                    "notes": shipping.notes.strip() or None,
                },
            )
        except RemoteFailure as e:
            self._fail(attempt, CheckoutState.ORDER_FAILED, e)
            raise
        attempt.order_id = order["id"]

        self._move(attempt, CheckoutState.PLACING_ITEMS)
        try:
            self._data.insert_many(
                "order_items",
                [
                    {
                        "order_id": order["id"],
                        "product_id": item.product_id,
                        "quantity": item.quantity,
                        "price": item.product.price if item.product else 0,
                        "product_name": item.product.name if item.product else "",
                        "product_image": item.product.image_url if item.product else None,
                    }
                    for item in snapshot.items
                ],
            )
        except RemoteFailure as e:
            error = PartialOrder(order["id"], attempt.order_number)
            self._fail(attempt, CheckoutState.ITEMS_FAILED, error)
            raise error from e

        self._move(attempt, CheckoutState.CLEARING_CART)
        try:
            self._cart.clear()
        except RemoteFailure as e:
            logger.warning("cart_clear_failed", order_number=attempt.order_number, error=e.message)

        self._move(attempt, CheckoutState.DONE)
        logger.info(
            "order_placed",
            order_number=attempt.order_number,
            items=len(snapshot.items),
            total_amount=snapshot.total,
        )
        return CheckoutResult(
            order_id=order["id"],
            order_number=attempt.order_number,
            total_amount=snapshot.total,
        )

    def _move(self, attempt: CheckoutAttempt, state: CheckoutState) -> None:
        attempt.advance(state)
        logger.debug("checkout_state", state=state.value, order_number=attempt.order_number)

    def _fail(self, attempt: CheckoutAttempt, state: CheckoutState, error: StoreError) -> None:
        attempt.error = error
        attempt.advance(state)
        logger.warning(
            "checkout_failed",
            state=state.value,
            order_number=attempt.order_number,
            error=error.message,
        )
