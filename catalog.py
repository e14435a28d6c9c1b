"""
Data access for the two catalog collections: products and banners.
"""
import re
from typing import Any, Dict, List, Optional

from loguru import logger
from pymongo import ASCENDING, DESCENDING
from pymongo.database import Database

from database import create_document, now_utc, oid_to_str, to_object_id
from errors import BannerLimitError, StorageError
from schemas import MAX_BANNERS, Banner, Product
from storage import BlobStorage

PRODUCTS = "product"
BANNERS = "banner"

SORT_FIELDS = {"created_at", "price"}


# -------------------------------- Products --------------------------------

def product_filter(tag: Optional[str] = None, hot: Optional[bool] = None, search: Optional[str] = None) -> Dict[str, Any]:
    filt: Dict[str, Any] = {}
    if tag:
        filt["tags"] = tag
    if hot is not None:
        filt["is_hot_product"] = hot
    if search and search.strip():
        pattern = {"$regex": re.escape(search.strip()), "$options": "i"}
        filt["$or"] = [
            {"name": pattern},
            {"description": pattern},
            {"tags": pattern},
        ]
    return filt


def create_product(database: Database, product: Product) -> Dict[str, Any]:
    _id = create_document(database, PRODUCTS, product)
    logger.info("Created product {} ({})", _id, product.name)
    return get_product(database, _id)


def get_product(database: Database, product_id: str) -> Optional[Dict[str, Any]]:
    oid = to_object_id(product_id)
    if oid is None:
        return None
    return oid_to_str(database[PRODUCTS].find_one({"_id": oid}))


def update_product(database: Database, product_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    oid = to_object_id(product_id)
    if oid is None:
        return None
    result = database[PRODUCTS].update_one({"_id": oid}, {"$set": {**changes, "updated_at": now_utc()}})
    if result.matched_count == 0:
        return None
    logger.info("Updated product {}", product_id)
    return get_product(database, product_id)


def delete_product(database: Database, storage: BlobStorage, product_id: str) -> bool:
    oid = to_object_id(product_id)
    if oid is None:
        return False
    doc = database[PRODUCTS].find_one_and_delete({"_id": oid})
    if doc is None:
        return False
    logger.info("Deleted product {}", product_id)
    remove_image(storage, doc.get("image_url"))
    return True


def list_products(
    database: Database,
    tag: Optional[str] = None,
    hot: Optional[bool] = None,
    search: Optional[str] = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    limit: Optional[int] = None,
    skip: int = 0,
) -> List[Dict[str, Any]]:
    if sort_by not in SORT_FIELDS:
        raise ValueError(f"Cannot sort products by '{sort_by}'")
    direction = ASCENDING if sort_order == "asc" else DESCENDING
    cursor = (
        database[PRODUCTS]
        .find(product_filter(tag, hot, search))
        .sort([(sort_by, direction), ("_id", direction)])
    )
    if skip:
        cursor = cursor.skip(skip)
    if limit:
        cursor = cursor.limit(limit)
    return [oid_to_str(p) for p in cursor]


def count_products(database: Database, tag: Optional[str] = None, hot: Optional[bool] = None, search: Optional[str] = None) -> int:
    return database[PRODUCTS].count_documents(product_filter(tag, hot, search))


def list_tags(database: Database) -> List[str]:
    return sorted(t for t in database[PRODUCTS].distinct("tags") if t)


# -------------------------------- Banners ---------------------------------

def count_banners(database: Database) -> int:
    return database[BANNERS].count_documents({})


def create_banner(database: Database, banner: Banner) -> Dict[str, Any]:
    # Check-then-insert: two admins racing can still exceed the limit
    if count_banners(database) >= MAX_BANNERS:
        raise BannerLimitError()
    _id = create_document(database, BANNERS, banner, timestamps=("created_at",))
    logger.info("Created banner {} ({})", _id, banner.title)
    return get_banner(database, _id)


def get_banner(database: Database, banner_id: str) -> Optional[Dict[str, Any]]:
    oid = to_object_id(banner_id)
    if oid is None:
        return None
    return oid_to_str(database[BANNERS].find_one({"_id": oid}))


def update_banner(database: Database, banner_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    oid = to_object_id(banner_id)
    if oid is None:
        return None
    result = database[BANNERS].update_one({"_id": oid}, {"$set": changes})
    if result.matched_count == 0:
        return None
    logger.info("Updated banner {}", banner_id)
    return get_banner(database, banner_id)


def delete_banner(database: Database, storage: BlobStorage, banner_id: str) -> bool:
    oid = to_object_id(banner_id)
    if oid is None:
        return False
    doc = database[BANNERS].find_one_and_delete({"_id": oid})
    if doc is None:
        return False
    logger.info("Deleted banner {}", banner_id)
    remove_image(storage, doc.get("image_url"))
    return True


def list_banners(database: Database, limit: int = MAX_BANNERS) -> List[Dict[str, Any]]:
    cursor = database[BANNERS].find({}).sort([("created_at", DESCENDING), ("_id", DESCENDING)]).limit(limit)
    return [oid_to_str(b) for b in cursor]


# ------------------------------- Dashboard --------------------------------

def stats(database: Database) -> Dict[str, int]:
    return {
        "total_products": count_products(database),
        "total_banners": count_banners(database),
        "hot_products": count_products(database, hot=True),
        "max_banners": MAX_BANNERS,
    }


def remove_image(storage: BlobStorage, image_url: Optional[str]) -> bool:
    """Best-effort blob removal once the owning record is gone."""
    if not image_url:
        return False
    try:
        return storage.delete(image_url)
    except (OSError, StorageError) as e:
        logger.warning("Could not delete image {}: {}", image_url, e)
        return False
