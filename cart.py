"""
Cart aggregate.

One row per (owner, product). Rows show live product pricing; the price is
only frozen when checkout turns the cart into an order.
"""
import logging
from typing import List, Optional, Tuple

from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from catalog import get_product
from database import parse_id, serialize_doc, utcnow
from errors import ItemNotFound, QuantityFloor, Unauthorized, ValidationError
from identity import Owner, is_owned_by, resolve_owner_for_write
from schemas import CartItem

logger = logging.getLogger(__name__)


def cart_line(item: dict, product: dict) -> dict:
    return {
        "id": str(item["_id"]),
        "quantity": item["quantity"],
        "color": item.get("color"),
        "size": item.get("size"),
        "name": product.get("name"),
        "price": product.get("price"),
        "image": product.get("image"),
        "productId": str(product["_id"]),
        "sku": product.get("sku"),
    }


def item_out(item: dict) -> dict:
    d = serialize_doc(item)
    return {
        "id": d["id"],
        "userId": d.get("user_id"),
        "guestId": d.get("guest_id"),
        "productId": d.get("product_id"),
        "quantity": d.get("quantity"),
        "size": d.get("size"),
        "color": d.get("color"),
        "createdAt": d.get("created_at"),
        "updatedAt": d.get("updated_at"),
    }


def load_lines(db: Database, owner: Owner, session=None) -> List[Tuple[dict, dict]]:
    """Cart rows joined with their current product, oldest first."""
    items = list(db["cart"].find(owner.filter(), session=session).sort("_id", 1))
    if not items:
        return []
    ids = [parse_id(it["product_id"]) for it in items]
    products = {str(p["_id"]): p for p in db["product"].find({"_id": {"$in": ids}}, session=session)}

    lines = []
    for it in items:
        product = products.get(it["product_id"])
        if product is None:
            logger.warning("Cart item %s points at missing product %s", it["_id"], it["product_id"])
            continue
        lines.append((it, product))
    return lines


def list_cart(db: Database, owner: Owner) -> List[dict]:
    return [cart_line(item, product) for item, product in load_lines(db, owner)]


def add_to_cart(
    db: Database,
    product_id,
    quantity: int = 1,
    user_id=None,
    guest_id=None,
    size: Optional[str] = None,
    color: Optional[str] = None,
) -> Tuple[dict, Optional[str]]:
    """
    Add a product to the owner's cart, or grow the quantity of the existing row.

    The variant (size/color) is recorded when the row is created and is not
    part of the row key.
    """
    if quantity is None:
        quantity = 1
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
        raise ValidationError("quantity must be a positive integer")

    product = get_product(db, product_id)
    owner, echoed_guest_id = resolve_owner_for_write(user_id, guest_id)

    row = CartItem(**owner.fields(), product_id=str(product["_id"]), quantity=quantity, size=size, color=color)
    key = {**owner.filter(), "product_id": row.product_id}
    now = utcnow()
    update = {
        "$inc": {"quantity": row.quantity},
        "$set": {"updated_at": now},
        "$setOnInsert": {
            **{k: v for k, v in row.model_dump(exclude={"quantity"}).items() if k not in key},
            "created_at": now,
        },
    }

    try:
        item = _upsert(db, key, update)
    except DuplicateKeyError:
        # Lost an insert race with a concurrent add; the row exists now
        item = _upsert(db, key, update)

    logger.debug("Cart %s:%s now holds %s x %s", owner.kind, key, item["quantity"], item["product_id"])
    return item, echoed_guest_id


def _upsert(db: Database, key: dict, update: dict) -> dict:
    return db["cart"].find_one_and_update(
        key,
        update,
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )


def _owned_item(db: Database, item_id, user_id, guest_id, action: str) -> dict:
    item = db["cart"].find_one({"_id": parse_id(item_id, ItemNotFound)})
    if not item:
        raise ItemNotFound()
    if not is_owned_by(item, user_id, guest_id):
        raise Unauthorized(f"Unauthorized {action} attempt")
    return item


def change_quantity(db: Database, item_id, change, user_id=None, guest_id=None) -> dict:
    """Step a row's quantity by +1 or -1; the floor is 1 and is never crossed."""
    if change not in (1, -1) or isinstance(change, bool):
        raise ValidationError("id and change (+1 or -1) required")

    item = _owned_item(db, item_id, user_id, guest_id, "update")

    # Conditional increment keeps concurrent steps from losing updates or
    # dropping below the floor
    updated = db["cart"].find_one_and_update(
        {"_id": item["_id"], "quantity": {"$gte": 1 - change}},
        {"$inc": {"quantity": change}, "$set": {"updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        if db["cart"].find_one({"_id": item["_id"]}) is None:
            raise ItemNotFound()
        raise QuantityFloor()
    return updated


def remove_item(db: Database, item_id, user_id=None, guest_id=None) -> str:
    item = _owned_item(db, item_id, user_id, guest_id, "delete")
    db["cart"].delete_one({"_id": item["_id"]})
    return str(item["_id"])


def clear_cart(db: Database, owner: Owner, session=None, item_ids=None) -> int:
    """Delete the owner's rows, or only ``item_ids`` of them when given."""
    filt = owner.filter()
    if item_ids is not None:
        filt["_id"] = {"$in": list(item_ids)}
    result = db["cart"].delete_many(filt, session=session)
    return result.deleted_count
