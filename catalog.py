"""
Product catalog.

Products are written by admin actions; ``rating`` belongs to the review
aggregator and is never accepted from a product payload.
"""
import logging
import re
from typing import Any, Dict, List, Optional

from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import create_document, page_window, parse_id, total_pages, utcnow
from errors import Conflict, DuplicateProduct, ProductNotFound, ValidationError
from schemas import Product

logger = logging.getLogger(__name__)

PAGE_SIZE = 12
DEFAULT_IMAGE = "/uploads/default.png"
EDITABLE_FIELDS = ("name", "price", "stock", "category", "color", "size", "description", "image", "images", "details")


def make_sku(name: str, product_id) -> str:
    slug = re.sub(r"[^a-z0-9]+", "_", name.lower()).strip("_")
    return f"{slug}_{product_id}"


def parse_category(value) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [c.strip() for c in value.split(",") if c.strip()]
    if isinstance(value, (list, tuple)):
        return [str(c).strip() for c in value if str(c).strip()]
    raise ValidationError("category must be a list or a comma separated string")


def product_out(doc: dict) -> dict:
    return {
        "id": str(doc["_id"]),
        "name": doc.get("name"),
        "price": doc.get("price"),
        "stock": doc.get("stock", 0),
        "category": doc.get("category", []),
        "sku": doc.get("sku"),
        "color": doc.get("color"),
        "size": doc.get("size"),
        "rating": doc.get("rating", 0),
        "description": doc.get("description"),
        "image": doc.get("image"),
        "images": doc.get("images", []),
        "details": doc.get("details", {}),
    }


def get_product(db: Database, product_id, session=None) -> dict:
    doc = db["product"].find_one({"_id": parse_id(product_id, ProductNotFound)}, session=session)
    if not doc:
        raise ProductNotFound()
    return doc


def list_products(db: Database, search: str = "", page: int = 1) -> dict:
    search = (search or "").strip()
    filt: Dict[str, Any] = {}
    if search:
        filt = {"$or": [
            {"name": {"$regex": re.escape(search), "$options": "i"}},
            {"category": search},
        ]}

    page, limit, skip = page_window(page, PAGE_SIZE)
    total = db["product"].count_documents(filt)
    cursor = db["product"].find(filt).sort("_id", DESCENDING).skip(skip).limit(limit)
    return {
        "products": [product_out(p) for p in cursor],
        "totalProds": total,
        "currentPage": page,
        "totalPages": total_pages(total, limit),
    }


def create_product(db: Database, payload: Dict[str, Any]) -> dict:
    missing = [f for f in ("name", "price", "stock", "category") if payload.get(f) in (None, "", [])]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    name = str(payload["name"]).strip()
    if db["product"].find_one({"name": name}):
        raise DuplicateProduct()

    image = payload.get("image") or DEFAULT_IMAGE
    try:
        product = Product(
            name=name,
            price=payload["price"],
            stock=payload["stock"],
            category=parse_category(payload["category"]),
            color=payload.get("color"),
            size=_str_or_none(payload.get("size")),
            description=payload.get("description"),
            image=image,
            images=payload.get("images") or [image],
            details=payload.get("details") or {},
        )
    except ValueError as e:
        raise ValidationError(str(e))

    # Sparse unique index on sku: the field is absent until the id is known
    doc = product.model_dump(exclude={"sku"})
    try:
        inserted = create_document(db, "product", doc)
    except DuplicateKeyError:
        raise DuplicateProduct()

    # The sku embeds the generated id, so it is set after the insert
    return product_out(db["product"].find_one_and_update(
        {"_id": parse_id(inserted)},
        {"$set": {"sku": make_sku(name, inserted)}},
        return_document=ReturnDocument.AFTER,
    ))


def update_product(db: Database, product_id, payload: Dict[str, Any]) -> dict:
    existing = get_product(db, product_id)
    update = {k: payload[k] for k in EDITABLE_FIELDS if k in payload and payload[k] is not None}
    if not update:
        raise ValidationError("At least one field is required to update")

    if "category" in update:
        update["category"] = parse_category(update["category"])
    if "size" in update:
        update["size"] = _str_or_none(update["size"])
    if "name" in update:
        update["name"] = str(update["name"]).strip()
        if update["name"] != existing["name"]:
            if db["product"].find_one({"name": update["name"], "_id": {"$ne": existing["_id"]}}):
                raise DuplicateProduct()
            update["sku"] = make_sku(update["name"], existing["_id"])

    merged = {**existing, **update}
    merged.pop("_id")
    try:
        validated = Product(**{k: v for k, v in merged.items() if k in Product.model_fields})
    except ValueError as e:
        raise ValidationError(str(e))

    # Store the coerced values, not the raw payload
    update = validated.model_dump(include=set(update))
    update["updated_at"] = utcnow()
    try:
        doc = db["product"].find_one_and_update(
            {"_id": existing["_id"]},
            {"$set": update},
            return_document=ReturnDocument.AFTER,
        )
    except DuplicateKeyError:
        raise DuplicateProduct()
    return product_out(doc)


def delete_product(db: Database, product_id) -> str:
    existing = get_product(db, product_id)
    pid = str(existing["_id"])
    if db["order"].find_one({"items.product_id": pid}):
        raise Conflict("Product is referenced by existing orders and cannot be deleted")

    db["cart"].delete_many({"product_id": pid})
    db["productreview"].delete_many({"product_id": pid})
    db["product"].delete_one({"_id": existing["_id"]})
    logger.info("Deleted product %s", pid)
    return pid


def _str_or_none(value: Optional[Any]) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)
