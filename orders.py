"""
Order conversion and order administration.

Checkout runs in two phases. The commit phase writes the order (items are
embedded, so one insert) and then clears the cart, inside a transaction when
the deployment supports one. The notify phase runs only after that commit
and can never undo it.

Without transactions the statements still run order-first: a crash between
them leaves an order next to a full cart, never an emptied cart with no
order. Clients that retry checkout send a ``checkoutKey`` so a retry returns
the order already created instead of a second one.
"""
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from cart import clear_cart, load_lines
from catalog import get_product
from database import page_window, parse_id, serialize_doc, total_pages, transaction, utcnow
from errors import Conflict, EmptyCart, OrderNotFound, ValidationError
from identity import Owner, owner_of
from notifications import build_wa_link
from schemas import Order, OrderItem, OrderStatus

logger = logging.getLogger(__name__)

ADMIN_PAGE_SIZE = 10


@dataclass
class ShippingInfo:
    email: Optional[str] = None
    address: Optional[str] = None
    phone_number: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    def validate(self) -> None:
        if not (_filled(self.email) and _filled(self.address) and _filled(self.phone_number)):
            raise ValidationError("Email, address and phoneNumber are required")


@dataclass
class CheckoutResult:
    order: Dict[str, Any]
    wa_link: str
    replayed: bool = False
    notified: bool = False
    cleared_items: int = 0


@dataclass
class ItemInput:
    product_id: Any
    quantity: Any
    price: Any
    size: Optional[str] = None
    color: Optional[str] = None


def _filled(value) -> bool:
    return value is not None and str(value).strip() != ""


# Status

def parse_status(value) -> OrderStatus:
    try:
        return OrderStatus(str(value).upper() if value is not None else value)
    except ValueError:
        raise ValidationError("Invalid status value")


def transition(current, new: OrderStatus) -> OrderStatus:
    """
    Any status may follow any other; admins correct mistakes by writing the
    status they want.
    """
    if current != new:
        logger.info("Order status %s -> %s", current, new.value)
    return new


# Rendering

def order_item_out(item: dict, order_id: str) -> dict:
    return {
        "id": item["id"],
        "orderId": order_id,
        "productId": item["product_id"],
        "name": item.get("name"),
        "image": item.get("image"),
        "quantity": item["quantity"],
        "price": item["price"],
        "size": item.get("size"),
        "color": item.get("color"),
    }


def order_out(doc: dict) -> dict:
    d = serialize_doc(doc)
    return {
        "id": d["id"],
        "userId": d.get("user_id"),
        "guestId": d.get("guest_id"),
        "firstName": d.get("first_name"),
        "lastName": d.get("last_name"),
        "email": d.get("email"),
        "address": d.get("address"),
        "phoneNumber": d.get("phone_number"),
        "totalAmount": d.get("total_amount"),
        "status": d.get("status"),
        "checkoutKey": d.get("checkout_key"),
        "createdAt": d.get("created_at"),
        "updatedAt": d.get("updated_at"),
        "orderItems": [order_item_out(it, d["id"]) for it in d.get("items", [])],
    }


# Checkout

def checkout(
    db: Database,
    owner: Owner,
    shipping: ShippingInfo,
    notifier=None,
    checkout_key: Optional[str] = None,
) -> CheckoutResult:
    shipping.validate()
    checkout_key = checkout_key.strip() if checkout_key else None

    if checkout_key:
        previous = db["order"].find_one({"checkout_key": checkout_key})
        if previous is not None:
            return _replay(previous, owner)

    lines = load_lines(db, owner)
    if not lines:
        raise EmptyCart()

    # Prices are read once here and frozen into the order items
    items = []
    for cart_item, product in lines:
        items.append(OrderItem(
            id=str(ObjectId()),
            product_id=str(product["_id"]),
            name=product.get("name"),
            image=product.get("image"),
            quantity=cart_item["quantity"],
            price=float(product["price"]),
            size=cart_item.get("size"),
            color=cart_item.get("color"),
        ))
    total = round(sum(it.price * it.quantity for it in items), 2)

    now = utcnow()
    order = Order(
        **owner.fields(),
        first_name=shipping.first_name,
        last_name=shipping.last_name,
        email=str(shipping.email).strip(),
        address=str(shipping.address).strip(),
        phone_number=str(shipping.phone_number).strip(),
        items=items,
        total_amount=total,
        checkout_key=checkout_key,
        created_at=now,
    )
    doc = _order_document(order, now)

    try:
        with transaction(db) as session:
            _insert_order(db, doc, session)
            # Only the rows that went into the order
            cleared = clear_cart(db, owner, session=session, item_ids=[item["_id"] for item, _ in lines])
    except DuplicateKeyError:
        if not checkout_key:
            raise
        # A concurrent request with the same key committed first
        return _replay(db["order"].find_one({"checkout_key": checkout_key}), owner)

    rendered = order_out(doc)
    logger.info(
        "Checkout committed: order %s for %s owner, %s items, total %s",
        rendered["id"], owner.kind, len(items), total,
    )

    notified = notify_order_placed(notifier, rendered)
    return CheckoutResult(
        order=rendered,
        wa_link=build_wa_link(rendered),
        notified=notified,
        cleared_items=cleared,
    )


def _order_document(order: Order, now) -> dict:
    doc = order.model_dump()
    doc["_id"] = ObjectId()
    doc["status"] = order.status.value
    doc["updated_at"] = now
    # Sparse unique index: keyless orders must not carry the field at all
    if doc.get("checkout_key") is None:
        doc.pop("checkout_key", None)
    return doc


def _insert_order(db: Database, doc: dict, session=None):
    db["order"].insert_one(doc, session=session)
    return doc["_id"]


def _replay(previous: dict, owner: Owner) -> CheckoutResult:
    if owner_of(previous) != owner:
        raise Conflict("checkoutKey already used")
    rendered = order_out(previous)
    logger.info("Checkout replayed for key %s (order %s)", previous.get("checkout_key"), rendered["id"])
    return CheckoutResult(order=rendered, wa_link=build_wa_link(rendered), replayed=True)


def notify_order_placed(notifier, order: dict) -> bool:
    """Post-commit notification; failures are logged and reported as False."""
    if notifier is None:
        return False
    try:
        return bool(notifier.send_order_confirmation(order))
    except Exception:
        logger.exception("Email sending failed for order %s", order["id"])
        return False


# Queries

def get_order(db: Database, order_id) -> dict:
    doc = db["order"].find_one({"_id": parse_id(order_id, OrderNotFound)})
    if not doc:
        raise OrderNotFound()
    return doc


def list_owner_orders(db: Database, owner: Owner) -> List[dict]:
    cursor = db["order"].find(owner.filter()).sort("created_at", DESCENDING)
    return [order_out(o) for o in cursor]


def list_orders(db: Database, search: str = "", page: int = 1) -> dict:
    search = (search or "").strip()
    filt: Dict[str, Any] = {}
    if search:
        pattern = {"$regex": re.escape(search), "$options": "i"}
        clauses = [
            {"phone_number": pattern},
            {"first_name": pattern},
            {"address": pattern},
        ]
        if search.upper() in OrderStatus.__members__:
            clauses.append({"status": search.upper()})
        filt = {"$or": clauses}

    page, limit, skip = page_window(page, ADMIN_PAGE_SIZE)
    total = db["order"].count_documents(filt)
    cursor = db["order"].find(filt).sort("created_at", DESCENDING).skip(skip).limit(limit)
    return {
        "data": [order_out(o) for o in cursor],
        "totalOrders": total,
        "currentPage": page,
        "totalPages": total_pages(total, limit),
    }


# Admin mutations

def _replacement_items(db: Database, items: List[ItemInput]) -> List[OrderItem]:
    if not items:
        raise ValidationError("items must contain at least one item")
    out = []
    for it in items:
        if not _filled(it.product_id):
            raise ValidationError("Each item needs a productId")
        product = get_product(db, it.product_id)
        try:
            out.append(OrderItem(
                id=str(ObjectId()),
                product_id=str(product["_id"]),
                name=product.get("name"),
                image=product.get("image"),
                quantity=it.quantity,
                price=it.price,
                size=it.size,
                color=it.color,
            ))
        except ValueError as e:
            raise ValidationError(f"Invalid item: {e}")
    return out


def update_order(
    db: Database,
    order_id,
    address: Optional[str] = None,
    phone_number: Optional[str] = None,
    items: Optional[List[ItemInput]] = None,
    status=None,
) -> dict:
    """
    Admin edit. Everything is validated before the single write, so a bad
    status or item leaves the order untouched.

    Items are replaced wholesale and the total is recomputed from the new set.
    """
    current = get_order(db, order_id)
    update: Dict[str, Any] = {}

    if status is not None:
        update["status"] = transition(current.get("status"), parse_status(status)).value
    if _filled(address):
        update["address"] = str(address).strip()
    if _filled(phone_number):
        update["phone_number"] = str(phone_number).strip()
    if items is not None:
        new_items = _replacement_items(db, items)
        update["items"] = [it.model_dump() for it in new_items]
        update["total_amount"] = round(sum(it.price * it.quantity for it in new_items), 2)

    if not update:
        raise ValidationError("Nothing to update")

    update["updated_at"] = utcnow()
    doc = db["order"].find_one_and_update(
        {"_id": current["_id"]},
        {"$set": update},
        return_document=ReturnDocument.AFTER,
    )
    if doc is None:
        raise OrderNotFound()
    return order_out(doc)


def update_status(db: Database, order_id, status) -> dict:
    if not _filled(order_id) or not _filled(status):
        raise ValidationError("Missing orderId or status")
    return update_order(db, order_id, status=status)
