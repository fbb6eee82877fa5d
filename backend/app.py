import math
import os
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from bson import ObjectId
from bson.errors import InvalidId
from dotenv import load_dotenv
from flask import Flask, jsonify, request
from flask_pymongo import PyMongo
from pymongo import ReturnDocument
from pymongo.errors import BulkWriteError, DuplicateKeyError, PyMongoError
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from .auth import AdminTokenGate
from .cors import CorsPolicy
from .errors import SlugError, SlugResolutionError
from .slugs import DEFAULT_MAX_ATTEMPTS, assign_slug

load_dotenv()

ORDER_STATUSES = ("created", "paid", "fulfilled", "cancelled", "expired")
PAYMENT_STATUSES = ("pending", "paid", "failed")
SIZE_UNITS = ("in", "cm")
DEFAULT_FORMATS = [
    {"name": "Canvas", "price": 100},
    {"name": "Metal", "price": 150},
    {"name": "Acrylic", "price": 200},
    {"name": "Paper", "price": 50},
]


def normalize_text(value) -> str:
    if value is None:
        return ""
    return " ".join(str(value).split())


def optional_text(value) -> Optional[str]:
    if value is None:
        return None
    stripped = str(value).strip()
    return stripped or None


def parse_object_id(value) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def parse_number(value, *, minimum: Optional[float] = 0.0) -> Optional[float]:
    if isinstance(value, bool) or value is None or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    if minimum is not None and number < minimum:
        return None
    return number


def parse_bool(value) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "1", "yes", "on"}:
            return True
        if lowered in {"false", "0", "no", "off", ""}:
            return False
    if isinstance(value, int):
        return bool(value)
    return None


def parse_keywords(value) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, (list, tuple)):
        return []
    keywords = []
    for keyword in value:
        cleaned = normalize_text(keyword)
        if cleaned:
            keywords.append(cleaned)
    return keywords


def serialize_datetime(value) -> Optional[str]:
    return value.isoformat() if isinstance(value, datetime) else None


def serialize_id(value) -> Optional[str]:
    return str(value) if value is not None else None


def error_response(message: str, status_code: int, details: Optional[str] = None):
    payload = {"error": message}
    if details:
        payload["details"] = details
    return jsonify(payload), status_code


def get_json_payload() -> Dict:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def create_app(test_config: Optional[Dict] = None, db=None) -> Flask:
    """Create and configure the Flask application.

    ``db`` may be any pymongo-compatible database; when omitted one is opened
    from ``MONGO_URI`` through Flask-PyMongo.
    """
    app = Flask(__name__)

    # Trust X-Forwarded-* from the proxy for host, scheme and client address.
    trusted_proxy_hops_raw = os.getenv("TRUSTED_PROXY_HOPS", "1")
    try:
        trusted_proxy_hops = max(0, int(trusted_proxy_hops_raw))
    except (TypeError, ValueError):
        trusted_proxy_hops = 1
    if trusted_proxy_hops:
        app.wsgi_app = ProxyFix(
            app.wsgi_app,
            x_for=trusted_proxy_hops,
            x_proto=trusted_proxy_hops,
            x_host=trusted_proxy_hops,
            x_port=trusted_proxy_hops,
        )

    # --- Configuration ---
    app.config["MONGO_URI"] = os.getenv(
        "MONGO_URI", "mongodb://localhost:27017/photoshop"
    )
    app.config["ADMIN_API_KEY"] = (os.getenv("ADMIN_API_KEY") or "").strip()
    app.config["CORS_ALLOWED_ORIGINS"] = os.getenv("CORS_ALLOWED_ORIGINS", "")
    try:
        app.config["SLUG_MAX_ATTEMPTS"] = max(
            1, int(os.getenv("SLUG_MAX_ATTEMPTS", str(DEFAULT_MAX_ATTEMPTS)))
        )
    except ValueError:
        app.config["SLUG_MAX_ATTEMPTS"] = DEFAULT_MAX_ATTEMPTS
    if test_config:
        app.config.update(test_config)

    # --- Initialize extensions ---
    if db is None:
        db = PyMongo(app).db
    app.extensions["catalog_db"] = db

    cors_policy = CorsPolicy.from_env_value(app.config["CORS_ALLOWED_ORIGINS"])
    cors_policy.init_app(app)
    admin_required = AdminTokenGate(app.config["ADMIN_API_KEY"])
    slug_max_attempts = app.config["SLUG_MAX_ATTEMPTS"]

    def ensure_indexes():
        index_specs = [
            (db.categories, "slug", {"unique": True, "sparse": True}),
            (db.photos, "slug", {"unique": True, "sparse": True}),
            (db.photos, [("created_at", -1)], {}),
            (db.formats, "name", {"unique": True}),
            (db.frames, "style", {"unique": True}),
            (db.orders, [("created_at", -1)], {}),
        ]
        for collection, keys, options in index_specs:
            try:
                collection.create_index(keys, **options)
            except Exception as exc:
                app.logger.warning(
                    "Unable to ensure index %s on %s: %s", keys, collection.name, exc
                )

    ensure_indexes()

    # --- Error handlers ---

    @app.errorhandler(HTTPException)
    def handle_http_exception(exc: HTTPException):
        response, status_code = error_response(
            exc.description or exc.name, exc.code or 500
        )
        for name, value in exc.get_headers():
            if name.lower() != "content-type":
                response.headers[name] = value
        return response, status_code

    @app.errorhandler(DuplicateKeyError)
    def handle_duplicate_key(exc: DuplicateKeyError):
        key_value = (exc.details or {}).get("keyValue") or {}
        fields = ", ".join(sorted(key_value)) if key_value else None
        app.logger.warning("Duplicate key rejected: %s", fields or exc)
        return error_response(
            "Conflict: duplicate value",
            409,
            f"A record with the same {fields} already exists." if fields else None,
        )

    @app.errorhandler(SlugResolutionError)
    def handle_slug_exhaustion(exc: SlugResolutionError):
        app.logger.error("Slug resolution failed: %s", exc)
        return error_response("Could not assign a unique slug", 500)

    @app.errorhandler(PyMongoError)
    def handle_database_error(exc: PyMongoError):
        app.logger.exception("Database error: %s", exc)
        return error_response("Database error", 500)

    @app.errorhandler(Exception)
    def handle_unexpected_error(exc: Exception):
        app.logger.exception("Unhandled error: %s", exc)
        return error_response("Internal server error", 500)

    # --- Helpers ---

    def slug_for(collection, title: str, exclude_id: Optional[ObjectId] = None) -> str:
        slug = assign_slug(
            collection, title, exclude_id=exclude_id, max_attempts=slug_max_attempts
        )
        app.logger.info("Assigned slug %r in %s", slug, collection.name)
        return slug

    def needs_new_slug(existing: Dict, title_field: str, new_title: str) -> bool:
        return new_title != existing.get(title_field) or not existing.get("slug")

    def serialize_category(category_document, featured_image=None, photo_count=0):
        if not category_document:
            return {}
        return {
            "id": serialize_id(category_document.get("_id")),
            "name": category_document.get("name", ""),
            "slug": category_document.get("slug", ""),
            "description": category_document.get("description", "") or "",
            "featured_image": featured_image,
            "photo_count": int(photo_count or 0),
            "created_at": serialize_datetime(category_document.get("created_at")),
            "updated_at": serialize_datetime(category_document.get("updated_at")),
        }

    def serialize_category_summary(category_document):
        if not category_document:
            return None
        return {
            "id": serialize_id(category_document.get("_id")),
            "name": category_document.get("name", ""),
            "slug": category_document.get("slug", ""),
        }

    def serialize_size(size_document):
        if not size_document:
            return None
        return {
            "id": serialize_id(size_document.get("_id")),
            "name": size_document.get("name", ""),
            "width": size_document.get("width"),
            "height": size_document.get("height"),
            "unit": size_document.get("unit", "in"),
            "price": size_document.get("price"),
            "created_at": serialize_datetime(size_document.get("created_at")),
            "updated_at": serialize_datetime(size_document.get("updated_at")),
        }

    def build_photo_context(photo_documents) -> Tuple[Dict, Dict]:
        category_ids = set()
        size_ids = set()
        for document in photo_documents:
            if document.get("category_id"):
                category_ids.add(document["category_id"])
            size_ids.update(document.get("sizes") or [])

        category_map = {}
        if category_ids:
            category_map = {
                document["_id"]: document
                for document in db.categories.find({"_id": {"$in": list(category_ids)}})
            }
        size_map = {}
        if size_ids:
            size_map = {
                document["_id"]: document
                for document in db.sizes.find({"_id": {"$in": list(size_ids)}})
            }
        return category_map, size_map

    def serialize_photo(photo_document, category_map=None, size_map=None):
        category_map = category_map or {}
        size_map = size_map or {}
        category_id = photo_document.get("category_id")
        sizes = []
        for size_id in photo_document.get("sizes") or []:
            size_document = size_map.get(size_id)
            if size_document:
                sizes.append(serialize_size(size_document))
        return {
            "id": serialize_id(photo_document.get("_id")),
            "title": photo_document.get("title", ""),
            "slug": photo_document.get("slug", ""),
            "description": photo_document.get("description", "") or "",
            "keywords": list(photo_document.get("keywords") or []),
            "image_url": photo_document.get("image_url"),
            "public_id": photo_document.get("public_id"),
            "category": serialize_category_summary(category_map.get(category_id)),
            "category_id": serialize_id(category_id),
            "featured": bool(photo_document.get("featured", False)),
            "full_length": bool(photo_document.get("full_length", False)),
            "sizes": sizes,
            "use_default_sizes": bool(photo_document.get("use_default_sizes", True)),
            "location": photo_document.get("location"),
            "width": photo_document.get("width"),
            "height": photo_document.get("height"),
            "aspect_ratio": photo_document.get("aspect_ratio"),
            "image_format": photo_document.get("image_format"),
            "created_at": serialize_datetime(photo_document.get("created_at")),
            "updated_at": serialize_datetime(photo_document.get("updated_at")),
        }

    def serialize_photos(photo_documents):
        photo_documents = list(photo_documents)
        category_map, size_map = build_photo_context(photo_documents)
        return [
            serialize_photo(document, category_map, size_map)
            for document in photo_documents
        ]

    def serialize_named_option(document, name_field: str):
        return {
            "id": serialize_id(document.get("_id")),
            name_field: document.get(name_field, ""),
            "price": document.get("price"),
            "created_at": serialize_datetime(document.get("created_at")),
            "updated_at": serialize_datetime(document.get("updated_at")),
        }

    def serialize_price(price_document, size_map=None):
        size_map = size_map or {}
        size_id = price_document.get("size_id")
        return {
            "id": serialize_id(price_document.get("_id")),
            "size_id": serialize_id(size_id),
            "size": serialize_size(size_map.get(size_id)),
            "price": price_document.get("price"),
            "label": price_document.get("label"),
            "created_at": serialize_datetime(price_document.get("created_at")),
            "updated_at": serialize_datetime(price_document.get("updated_at")),
        }

    def serialize_order(order_document):
        items = []
        for item in order_document.get("items") or []:
            items.append(
                {
                    "product_id": serialize_id(item.get("product_id")),
                    "title": item.get("title", ""),
                    "image_url": item.get("image_url"),
                    "size": item.get("size"),
                    "frame": item.get("frame"),
                    "format": item.get("format"),
                    "unit_price": item.get("unit_price"),
                    "quantity": item.get("quantity", 1),
                }
            )
        return {
            "id": serialize_id(order_document.get("_id")),
            "user_id": order_document.get("user_id"),
            "items": items,
            "total_amount": order_document.get("total_amount"),
            "currency": order_document.get("currency", "usd"),
            "session_id": order_document.get("session_id"),
            "payment_intent_id": order_document.get("payment_intent_id"),
            "payment_status": order_document.get("payment_status", "pending"),
            "status": order_document.get("status", "created"),
            "created_at": serialize_datetime(order_document.get("created_at")),
            "updated_at": serialize_datetime(order_document.get("updated_at")),
        }

    def normalize_size_payload(payload: Dict, partial: bool):
        fields = {}
        if "name" in payload or not partial:
            name = normalize_text(payload.get("name"))
            if not name:
                return None, "Size name is required"
            fields["name"] = name
        for key in ("width", "height", "price"):
            if key not in payload:
                continue
            if payload[key] is None:
                fields[key] = None
                continue
            number = parse_number(payload[key])
            if number is None:
                return None, f"Size {key} must be a non-negative number"
            fields[key] = number
        if "unit" in payload or not partial:
            unit = normalize_text(payload.get("unit") or "in").lower()
            if unit not in SIZE_UNITS:
                return None, "Size unit must be 'in' or 'cm'"
            fields["unit"] = unit
        return fields, None

    def normalize_photo_payload(payload: Dict):
        fields = {}
        for key in ("image_url", "public_id", "location", "image_format"):
            if key in payload:
                fields[key] = optional_text(payload[key])
        if "description" in payload:
            fields["description"] = str(payload.get("description") or "").strip()
        if "keywords" in payload:
            fields["keywords"] = parse_keywords(payload["keywords"])
        for key in ("featured", "full_length", "use_default_sizes"):
            if key not in payload:
                continue
            flag = parse_bool(payload[key])
            if flag is None:
                return None, f"{key} must be a boolean"
            fields[key] = flag
        if "category_id" in payload:
            raw_category = payload["category_id"]
            if raw_category in (None, ""):
                fields["category_id"] = None
            else:
                category_id = parse_object_id(raw_category)
                if category_id is None:
                    return None, "Invalid category ID"
                if not db.categories.find_one({"_id": category_id}, {"_id": 1}):
                    return None, "Category not found"
                fields["category_id"] = category_id
        if "sizes" in payload:
            raw_sizes = payload["sizes"] or []
            if not isinstance(raw_sizes, (list, tuple)):
                return None, "sizes must be a list of size IDs"
            size_ids = []
            for raw_size in raw_sizes:
                size_id = parse_object_id(raw_size)
                if size_id is None:
                    return None, "Invalid size ID"
                if size_id not in size_ids:
                    size_ids.append(size_id)
            fields["sizes"] = size_ids
            if size_ids:
                found = {
                    document["_id"]
                    for document in db.sizes.find({"_id": {"$in": size_ids}}, {"_id": 1})
                }
                if len(found) != len(size_ids):
                    return None, "Size not found"
        for key in ("width", "height"):
            if key not in payload:
                continue
            if payload[key] is None:
                fields[key] = None
                continue
            number = parse_number(payload[key])
            if number is None:
                return None, f"Photo {key} must be a non-negative number"
            fields[key] = number
        if fields.get("use_default_sizes"):
            fields["sizes"] = []
        return fields, None

    def apply_aspect_ratio(fields: Dict, existing: Optional[Dict] = None):
        existing = existing or {}
        width = fields.get("width", existing.get("width"))
        height = fields.get("height", existing.get("height"))
        if width and height:
            fields["aspect_ratio"] = round(width / height, 4)
        elif "width" in fields or "height" in fields:
            fields["aspect_ratio"] = None

    def normalize_order_item(payload) -> Tuple[Optional[Dict], Optional[str]]:
        if not isinstance(payload, dict):
            return None, "Each order item must be an object"
        product_id = parse_object_id(payload.get("product_id"))
        if product_id is None:
            return None, "Order items need a valid product_id"
        title = normalize_text(payload.get("title"))
        if not title:
            return None, "Order items need a title"
        unit_price = parse_number(payload.get("unit_price"))
        if unit_price is None:
            return None, "Order items need a non-negative unit_price"
        quantity_raw = payload.get("quantity", 1)
        if isinstance(quantity_raw, bool):
            return None, "Order item quantity must be a positive integer"
        try:
            quantity = int(quantity_raw)
        except (TypeError, ValueError):
            return None, "Order item quantity must be a positive integer"
        if quantity < 1:
            return None, "Order item quantity must be a positive integer"
        item = {
            "product_id": product_id,
            "title": title,
            "unit_price": unit_price,
            "quantity": quantity,
        }
        for key in ("image_url", "size", "frame", "format"):
            item[key] = optional_text(payload.get(key))
        return item, None

    def ensure_default_formats():
        if db.formats.count_documents({}) > 0:
            return
        app.logger.info("No formats found, creating default formats")
        now = datetime.utcnow()
        try:
            db.formats.insert_many(
                [dict(default, created_at=now, updated_at=now) for default in DEFAULT_FORMATS],
                ordered=False,
            )
        except BulkWriteError as exc:
            # Another request seeded some of them first.
            app.logger.info("Default formats partially present: %s", exc.details.get("nInserted"))

    # --- Routes ---

    @app.route("/health")
    @app.route("/api", methods=["GET"])
    def health():
        return jsonify({"status": "ok", "message": "API is running"})

    # Categories
    @app.route("/api/categories", methods=["GET"])
    def list_categories():
        categories = []
        for category_document in db.categories.find().sort("name", 1):
            category_id = category_document["_id"]
            featured_photo = db.photos.find_one(
                {"category_id": category_id, "featured": True}
            )
            photo_count = db.photos.count_documents({"category_id": category_id})
            categories.append(
                serialize_category(
                    category_document,
                    featured_image=featured_photo.get("image_url")
                    if featured_photo
                    else None,
                    photo_count=photo_count,
                )
            )
        return jsonify(categories)

    @app.route("/api/categories/<category_id>", methods=["GET"])
    def get_category(category_id: str):
        category_object_id = parse_object_id(category_id)
        if category_object_id is None:
            return error_response("Invalid category ID", 400)
        category_document = db.categories.find_one({"_id": category_object_id})
        if not category_document:
            return error_response("Category not found", 404)
        photo_count = db.photos.count_documents({"category_id": category_object_id})
        return jsonify(serialize_category(category_document, photo_count=photo_count))

    @app.route("/api/categories", methods=["POST"])
    @admin_required
    def create_category():
        payload = get_json_payload()
        name = normalize_text(payload.get("name"))
        if not name:
            return error_response("Title is required", 400)
        try:
            slug = slug_for(db.categories, name)
        except SlugError as exc:
            return error_response(str(exc), 400)

        now = datetime.utcnow()
        document = {
            "name": name,
            "slug": slug,
            "description": str(payload.get("description") or "").strip(),
            "created_at": now,
            "updated_at": now,
        }
        insert_result = db.categories.insert_one(document)
        created = db.categories.find_one({"_id": insert_result.inserted_id})
        return jsonify(serialize_category(created)), 201

    @app.route("/api/categories/<category_id>", methods=["PUT"])
    @admin_required
    def update_category(category_id: str):
        category_object_id = parse_object_id(category_id)
        if category_object_id is None:
            return error_response("Invalid category ID", 400)

        payload = get_json_payload()
        if not payload:
            return error_response("Request body cannot be empty", 400)

        existing = db.categories.find_one({"_id": category_object_id})
        if not existing:
            return error_response("Category not found", 404)

        updates = {}
        if "name" in payload:
            name = normalize_text(payload.get("name"))
            if not name:
                return error_response("Title is required", 400)
            updates["name"] = name
        if "description" in payload:
            updates["description"] = str(payload.get("description") or "").strip()

        new_name = updates.get("name", existing.get("name"))
        if needs_new_slug(existing, "name", new_name):
            try:
                updates["slug"] = slug_for(
                    db.categories, new_name, exclude_id=category_object_id
                )
            except SlugError as exc:
                return error_response(str(exc), 400)

        updates["updated_at"] = datetime.utcnow()
        updated = db.categories.find_one_and_update(
            {"_id": category_object_id},
            {"$set": updates},
            return_document=ReturnDocument.AFTER,
        )
        if not updated:
            return error_response("Category not found", 404)
        photo_count = db.photos.count_documents({"category_id": category_object_id})
        return jsonify(serialize_category(updated, photo_count=photo_count))

    @app.route("/api/categories/<category_id>", methods=["DELETE"])
    @admin_required
    def delete_category(category_id: str):
        category_object_id = parse_object_id(category_id)
        if category_object_id is None:
            return error_response("Invalid category ID", 400)

        photo_count = db.photos.count_documents({"category_id": category_object_id})
        if photo_count > 0:
            return error_response(
                "Cannot delete category with associated photos",
                409,
                f"This category has {photo_count} photo(s). "
                "Please reassign or delete them first.",
            )

        result = db.categories.delete_one({"_id": category_object_id})
        if not result.deleted_count:
            return error_response("Category not found", 404)
        return "", 204

    @app.route("/api/gallery/<slug>", methods=["GET"])
    def get_gallery(slug: str):
        category_document = db.categories.find_one({"slug": slug})
        if not category_document:
            return error_response("Category not found", 404)
        photo_documents = db.photos.find(
            {"category_id": category_document["_id"]}
        ).sort("created_at", -1)
        photos = serialize_photos(photo_documents)
        return jsonify(
            {
                "category": serialize_category(
                    category_document, photo_count=len(photos)
                ),
                "photos": photos,
            }
        )

    # Photos
    @app.route("/api/photos", methods=["GET"])
    def list_photos():
        return jsonify(serialize_photos(db.photos.find().sort("created_at", -1)))

    @app.route("/api/photos/<photo_id>", methods=["GET"])
    def get_photo(photo_id: str):
        photo_object_id = parse_object_id(photo_id)
        if photo_object_id is None:
            return error_response("Invalid photo ID", 400)
        photo_document = db.photos.find_one({"_id": photo_object_id})
        if not photo_document:
            return error_response("Photo not found", 404)
        return jsonify(serialize_photos([photo_document])[0])

    @app.route("/api/photos/slug/<slug>", methods=["GET"])
    def get_photo_by_slug(slug: str):
        photo_document = db.photos.find_one({"slug": slug})
        if not photo_document:
            return error_response("Photo not found", 404)

        photo = serialize_photos([photo_document])[0]
        if photo_document.get("use_default_sizes", True):
            available_sizes = [
                serialize_size(document) for document in db.sizes.find().sort("price", 1)
            ]
        else:
            available_sizes = photo["sizes"]
        photo["available_sizes"] = available_sizes
        return jsonify(photo)

    @app.route("/api/photos", methods=["POST"])
    @admin_required
    def create_photo():
        payload = get_json_payload()
        title = normalize_text(payload.get("title"))
        if not title:
            return error_response("Title is required", 400)

        fields, field_error = normalize_photo_payload(payload)
        if field_error:
            return error_response(field_error, 400)
        try:
            slug = slug_for(db.photos, title)
        except SlugError as exc:
            return error_response(str(exc), 400)

        now = datetime.utcnow()
        document = {
            "title": title,
            "slug": slug,
            "description": "",
            "keywords": [],
            "image_url": None,
            "public_id": None,
            "category_id": None,
            "featured": False,
            "full_length": False,
            "sizes": [],
            "use_default_sizes": True,
            "created_at": now,
            "updated_at": now,
        }
        document.update(fields)
        apply_aspect_ratio(document)
        insert_result = db.photos.insert_one(document)
        created = db.photos.find_one({"_id": insert_result.inserted_id})
        return jsonify(serialize_photos([created])[0]), 201

    @app.route("/api/photos/<photo_id>", methods=["PUT"])
    @admin_required
    def update_photo(photo_id: str):
        photo_object_id = parse_object_id(photo_id)
        if photo_object_id is None:
            return error_response("Invalid photo ID", 400)

        payload = get_json_payload()
        if not payload:
            return error_response("Request body cannot be empty", 400)

        existing = db.photos.find_one({"_id": photo_object_id})
        if not existing:
            return error_response("Photo not found", 404)

        updates, field_error = normalize_photo_payload(payload)
        if field_error:
            return error_response(field_error, 400)
        if "title" in payload:
            title = normalize_text(payload.get("title"))
            if not title:
                return error_response("Title is required", 400)
            updates["title"] = title

        new_title = updates.get("title", existing.get("title"))
        if needs_new_slug(existing, "title", new_title):
            try:
                updates["slug"] = slug_for(
                    db.photos, new_title, exclude_id=photo_object_id
                )
            except SlugError as exc:
                return error_response(str(exc), 400)

        apply_aspect_ratio(updates, existing)
        updates["updated_at"] = datetime.utcnow()
        updated = db.photos.find_one_and_update(
            {"_id": photo_object_id},
            {"$set": updates},
            return_document=ReturnDocument.AFTER,
        )
        if not updated:
            return error_response("Photo not found", 404)
        return jsonify(serialize_photos([updated])[0])

    @app.route("/api/photos/<photo_id>", methods=["DELETE"])
    @admin_required
    def delete_photo(photo_id: str):
        photo_object_id = parse_object_id(photo_id)
        if photo_object_id is None:
            return error_response("Invalid photo ID", 400)
        result = db.photos.delete_one({"_id": photo_object_id})
        if not result.deleted_count:
            return error_response("Photo not found", 404)
        return "", 204

    # Sizes
    @app.route("/api/sizes", methods=["GET"])
    def list_sizes():
        return jsonify(
            [serialize_size(document) for document in db.sizes.find().sort("created_at", -1)]
        )

    @app.route("/api/sizes/<size_id>", methods=["GET"])
    def get_size(size_id: str):
        size_object_id = parse_object_id(size_id)
        if size_object_id is None:
            return error_response("Invalid size ID", 400)
        size_document = db.sizes.find_one({"_id": size_object_id})
        if not size_document:
            return error_response("Size not found", 404)
        return jsonify(serialize_size(size_document))

    @app.route("/api/sizes", methods=["POST"])
    @admin_required
    def create_size():
        fields, field_error = normalize_size_payload(get_json_payload(), partial=False)
        if field_error:
            return error_response(field_error, 400)
        now = datetime.utcnow()
        fields.update({"created_at": now, "updated_at": now})
        insert_result = db.sizes.insert_one(fields)
        return jsonify(serialize_size(db.sizes.find_one({"_id": insert_result.inserted_id}))), 201

    @app.route("/api/sizes/<size_id>", methods=["PUT"])
    @admin_required
    def update_size(size_id: str):
        size_object_id = parse_object_id(size_id)
        if size_object_id is None:
            return error_response("Invalid size ID", 400)
        payload = get_json_payload()
        if not payload:
            return error_response("Request body cannot be empty", 400)
        updates, field_error = normalize_size_payload(payload, partial=True)
        if field_error:
            return error_response(field_error, 400)
        updates["updated_at"] = datetime.utcnow()
        updated = db.sizes.find_one_and_update(
            {"_id": size_object_id},
            {"$set": updates},
            return_document=ReturnDocument.AFTER,
        )
        if not updated:
            return error_response("Size not found", 404)
        return jsonify(serialize_size(updated))

    @app.route("/api/sizes/<size_id>", methods=["DELETE"])
    @admin_required
    def delete_size(size_id: str):
        size_object_id = parse_object_id(size_id)
        if size_object_id is None:
            return error_response("Invalid size ID", 400)

        photo_count = db.photos.count_documents({"sizes": size_object_id})
        price_count = db.prices.count_documents({"size_id": size_object_id})
        if photo_count or price_count:
            references = []
            if photo_count:
                references.append(f"{photo_count} photo(s)")
            if price_count:
                references.append(f"{price_count} price(s)")
            return error_response(
                "Cannot delete size with associated references",
                409,
                f"This size has {' and '.join(references)}. "
                "Please reassign or delete them first.",
            )

        result = db.sizes.delete_one({"_id": size_object_id})
        if not result.deleted_count:
            return error_response("Size not found", 404)
        return "", 204

    # Frames and formats share the same shape: a unique label plus a price.
    def register_priced_option_routes(
        collection_name: str,
        url_prefix: str,
        name_field: str,
        entity: str,
        before_list=None,
    ):
        collection = db[collection_name]
        label = entity.capitalize()

        def normalize_option_payload(payload: Dict, partial: bool):
            fields = {}
            if name_field in payload or not partial:
                name = normalize_text(payload.get(name_field))
                if not name:
                    return None, f"{label} {name_field} is required"
                fields[name_field] = name
            if "price" in payload or not partial:
                price = parse_number(payload.get("price"))
                if price is None:
                    return None, f"{label} price must be a non-negative number"
                fields["price"] = price
            return fields, None

        def list_options():
            if before_list is not None:
                before_list()
            documents = collection.find().sort(name_field, 1)
            return jsonify(
                [serialize_named_option(document, name_field) for document in documents]
            )

        def get_option(option_id: str):
            option_object_id = parse_object_id(option_id)
            if option_object_id is None:
                return error_response(f"Invalid {entity} ID", 400)
            document = collection.find_one({"_id": option_object_id})
            if not document:
                return error_response(f"{label} not found", 404)
            return jsonify(serialize_named_option(document, name_field))

        def create_option():
            fields, field_error = normalize_option_payload(get_json_payload(), partial=False)
            if field_error:
                return error_response(field_error, 400)
            now = datetime.utcnow()
            fields.update({"created_at": now, "updated_at": now})
            insert_result = collection.insert_one(fields)
            created = collection.find_one({"_id": insert_result.inserted_id})
            return jsonify(serialize_named_option(created, name_field)), 201

        def update_option(option_id: str):
            option_object_id = parse_object_id(option_id)
            if option_object_id is None:
                return error_response(f"Invalid {entity} ID", 400)
            payload = get_json_payload()
            if not payload:
                return error_response("Request body cannot be empty", 400)
            updates, field_error = normalize_option_payload(payload, partial=True)
            if field_error:
                return error_response(field_error, 400)
            updates["updated_at"] = datetime.utcnow()
            updated = collection.find_one_and_update(
                {"_id": option_object_id},
                {"$set": updates},
                return_document=ReturnDocument.AFTER,
            )
            if not updated:
                return error_response(f"{label} not found", 404)
            return jsonify(serialize_named_option(updated, name_field))

        def delete_option(option_id: str):
            option_object_id = parse_object_id(option_id)
            if option_object_id is None:
                return error_response(f"Invalid {entity} ID", 400)
            result = collection.delete_one({"_id": option_object_id})
            if not result.deleted_count:
                return error_response(f"{label} not found", 404)
            return "", 204

        app.add_url_rule(
            url_prefix, f"list_{collection_name}", list_options, methods=["GET"]
        )
        app.add_url_rule(
            f"{url_prefix}/<option_id>",
            f"get_{entity}",
            get_option,
            methods=["GET"],
        )
        app.add_url_rule(
            url_prefix,
            f"create_{entity}",
            admin_required(create_option),
            methods=["POST"],
        )
        app.add_url_rule(
            f"{url_prefix}/<option_id>",
            f"update_{entity}",
            admin_required(update_option),
            methods=["PUT"],
        )
        app.add_url_rule(
            f"{url_prefix}/<option_id>",
            f"delete_{entity}",
            admin_required(delete_option),
            methods=["DELETE"],
        )

    register_priced_option_routes("frames", "/api/frames", "style", "frame")
    register_priced_option_routes(
        "formats", "/api/formats", "name", "format", before_list=ensure_default_formats
    )

    # Prices
    def normalize_price_payload(payload: Dict, partial: bool):
        fields = {}
        if "size_id" in payload or not partial:
            size_id = parse_object_id(payload.get("size_id"))
            if size_id is None:
                return None, "Invalid size ID"
            if not db.sizes.find_one({"_id": size_id}, {"_id": 1}):
                return None, "Size not found"
            fields["size_id"] = size_id
        if "price" in payload or not partial:
            price = parse_number(payload.get("price"))
            if price is None:
                return None, "Price must be a non-negative number"
            fields["price"] = price
        if "label" in payload:
            fields["label"] = optional_text(payload.get("label"))
        return fields, None

    def serialize_prices(price_documents):
        price_documents = list(price_documents)
        size_ids = {document.get("size_id") for document in price_documents}
        size_ids.discard(None)
        size_map = {}
        if size_ids:
            size_map = {
                document["_id"]: document
                for document in db.sizes.find({"_id": {"$in": list(size_ids)}})
            }
        return [serialize_price(document, size_map) for document in price_documents]

    @app.route("/api/prices", methods=["GET"])
    def list_prices():
        return jsonify(serialize_prices(db.prices.find().sort("created_at", -1)))

    @app.route("/api/prices", methods=["POST"])
    @admin_required
    def create_price():
        fields, field_error = normalize_price_payload(get_json_payload(), partial=False)
        if field_error:
            return error_response(field_error, 400)
        now = datetime.utcnow()
        fields.setdefault("label", None)
        fields.update({"created_at": now, "updated_at": now})
        insert_result = db.prices.insert_one(fields)
        created = db.prices.find_one({"_id": insert_result.inserted_id})
        return jsonify(serialize_prices([created])[0]), 201

    @app.route("/api/prices/<price_id>", methods=["PUT"])
    @admin_required
    def update_price(price_id: str):
        price_object_id = parse_object_id(price_id)
        if price_object_id is None:
            return error_response("Invalid price ID", 400)
        payload = get_json_payload()
        if not payload:
            return error_response("Request body cannot be empty", 400)
        updates, field_error = normalize_price_payload(payload, partial=True)
        if field_error:
            return error_response(field_error, 400)
        updates["updated_at"] = datetime.utcnow()
        updated = db.prices.find_one_and_update(
            {"_id": price_object_id},
            {"$set": updates},
            return_document=ReturnDocument.AFTER,
        )
        if not updated:
            return error_response("Price not found", 404)
        return jsonify(serialize_prices([updated])[0])

    @app.route("/api/prices/<price_id>", methods=["DELETE"])
    @admin_required
    def delete_price(price_id: str):
        price_object_id = parse_object_id(price_id)
        if price_object_id is None:
            return error_response("Invalid price ID", 400)
        result = db.prices.delete_one({"_id": price_object_id})
        if not result.deleted_count:
            return error_response("Price not found", 404)
        return "", 204

    # Orders
    @app.route("/api/orders", methods=["GET"])
    def list_orders():
        order_identifier = request.args.get("id")
        if order_identifier:
            return get_order(order_identifier)

        query = {}
        user_id = (request.args.get("user_id") or "").strip()
        if user_id:
            query["user_id"] = user_id
        orders = [
            serialize_order(document)
            for document in db.orders.find(query).sort("created_at", -1)
        ]
        return jsonify(orders)

    @app.route("/api/orders/<order_id>", methods=["GET"])
    def get_order(order_id: str):
        order_object_id = parse_object_id(order_id)
        if order_object_id is None:
            return error_response("Invalid order ID", 400)
        order_document = db.orders.find_one({"_id": order_object_id})
        if not order_document:
            return error_response("Order not found", 404)
        return jsonify(serialize_order(order_document))

    @app.route("/api/orders", methods=["POST"])
    @admin_required
    def create_order():
        payload = get_json_payload()
        raw_items = payload.get("items")
        if not isinstance(raw_items, list) or not raw_items:
            return error_response("Orders need at least one item", 400)

        items = []
        for raw_item in raw_items:
            item, item_error = normalize_order_item(raw_item)
            if item_error:
                return error_response(item_error, 400)
            items.append(item)

        total_amount = parse_number(payload.get("total_amount"))
        if total_amount is None:
            return error_response("total_amount must be a non-negative number", 400)
        session_id = optional_text(payload.get("session_id"))
        if not session_id:
            return error_response("session_id is required", 400)

        now = datetime.utcnow()
        document = {
            "user_id": optional_text(payload.get("user_id")),
            "items": items,
            "total_amount": total_amount,
            "currency": (optional_text(payload.get("currency")) or "usd").lower(),
            "session_id": session_id,
            "payment_intent_id": optional_text(payload.get("payment_intent_id")),
            "payment_status": "pending",
            "status": "created",
            "created_at": now,
            "updated_at": now,
        }
        insert_result = db.orders.insert_one(document)
        app.logger.info(
            "Recorded order %s for session %s", insert_result.inserted_id, session_id
        )
        created = db.orders.find_one({"_id": insert_result.inserted_id})
        return jsonify(serialize_order(created)), 201

    @app.route("/api/orders/<order_id>", methods=["PUT"])
    @admin_required
    def update_order(order_id: str):
        order_object_id = parse_object_id(order_id)
        if order_object_id is None:
            return error_response("Invalid order ID", 400)

        payload = get_json_payload()
        updates = {}
        if "status" in payload:
            status = str(payload.get("status") or "").strip().lower()
            if status not in ORDER_STATUSES:
                return error_response(
                    "Invalid payload", 400, f"status must be one of {', '.join(ORDER_STATUSES)}"
                )
            updates["status"] = status
        if "payment_status" in payload:
            payment_status = str(payload.get("payment_status") or "").strip().lower()
            if payment_status not in PAYMENT_STATUSES:
                return error_response(
                    "Invalid payload",
                    400,
                    f"payment_status must be one of {', '.join(PAYMENT_STATUSES)}",
                )
            updates["payment_status"] = payment_status
        if not updates:
            return error_response("Invalid payload", 400)

        updates["updated_at"] = datetime.utcnow()
        updated = db.orders.find_one_and_update(
            {"_id": order_object_id},
            {"$set": updates},
            return_document=ReturnDocument.AFTER,
        )
        if not updated:
            return error_response("Order not found", 404)
        app.logger.info("Order %s updated: %s", order_object_id, updates)
        return jsonify(serialize_order(updated))

    return app
