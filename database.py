"""
Database Helper Functions

MongoDB access for the catalog API. This module is the only place that talks
to the driver: it owns the cached connection, provisions indexes and exposes
small CRUD helpers per collection. Records leave this module as plain dicts;
user records are always sanitized (roles is a non-empty list).
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient, ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, OperationFailure

from config import get_settings
from errors import DuplicateKey
from schemas import Account, Session
from search import SearchQuery, total_pages

logger = logging.getLogger(__name__)

PRODUCTS = "products"
USERS = "user"
SESSIONS = "session"
ACCOUNTS = "account"

DEFAULT_ROLE = "customer"

# Index already exists with different options / key spec
_INDEX_CONFLICT_CODES = {85, 86}

_client: Optional[MongoClient] = None
_db: Optional[Database] = None
_lock = threading.Lock()


# ---------- Connection lifecycle ----------

def connect(client: Optional[MongoClient] = None) -> Database:
    """Return the process-wide database handle, creating it on first use."""
    global _client, _db
    if _db is not None:
        return _db
    with _lock:
        if _db is None:
            settings = get_settings()
            if client is None:
                client = MongoClient(settings.database_url, tz_aware=True)
            database = client[settings.database_name]
            ensure_indexes(database)
            _client = client
            _db = database
            logger.info("Connected to database %s", settings.database_name)
    return _db


def get_db() -> Database:
    return connect()


def close_database() -> None:
    global _client, _db
    with _lock:
        if _client is not None:
            _client.close()
        _client = None
        _db = None


def _create_index(collection, keys, **options) -> None:
    try:
        collection.create_index(keys, **options)
    except OperationFailure as exc:
        if exc.code not in _INDEX_CONFLICT_CODES:
            raise
        logger.info("Index on %s.%s already exists: %s", collection.name, keys, exc)


def ensure_indexes(database: Database) -> None:
    _create_index(database[PRODUCTS], [("nameKey", ASCENDING)], unique=True, name="name_unique")
    _create_index(database[USERS], [("email", ASCENDING)], unique=True, name="email_unique")
    _create_index(database[SESSIONS], [("token", ASCENDING)], unique=True, name="token_unique")
    _create_index(database[SESSIONS], [("expires_at", ASCENDING)], expireAfterSeconds=0, name="session_ttl")
    _create_index(database[ACCOUNTS], [("user_id", ASCENDING)], name="account_user")


# ---------- Document helpers ----------

def utcnow() -> datetime:
    # BSON dates carry milliseconds
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_object_id(value: Any) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


def serialize_document(doc: Optional[dict]) -> Optional[dict]:
    """Render a stored document as JSON-ready data: `_id` becomes `id`."""
    if doc is None:
        return None
    result = {}
    for key, value in doc.items():
        if key == "nameKey":
            continue
        if key == "_id":
            result["id"] = str(value)
        elif isinstance(value, ObjectId):
            result[key] = str(value)
        elif isinstance(value, datetime):
            result[key] = as_utc(value)
        else:
            result[key] = value
    return result


def insert_document(collection_name: str, data: Union[BaseModel, dict]) -> dict:
    if isinstance(data, BaseModel):
        data = data.model_dump()
    doc = dict(data)
    doc.pop("_id", None)
    now = utcnow()
    doc["createdOn"] = now
    doc["lastUpdatedOn"] = now
    try:
        result = get_db()[collection_name].insert_one(doc)
    except DuplicateKeyError as exc:
        raise DuplicateKey(f"Duplicate key in {collection_name}") from exc
    doc["_id"] = result.inserted_id
    return doc


def find_document_by_id(collection_name: str, document_id: Any) -> Optional[dict]:
    _id = to_object_id(document_id)
    if _id is None:
        return None
    return get_db()[collection_name].find_one({"_id": _id})


def update_document(collection_name: str, document_id: Any, fields: dict) -> Optional[dict]:
    _id = to_object_id(document_id)
    if _id is None:
        return None
    changes = {k: v for k, v in fields.items() if k not in ("_id", "id", "createdOn")}
    changes["lastUpdatedOn"] = utcnow()
    try:
        return get_db()[collection_name].find_one_and_update(
            {"_id": _id},
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
        )
    except DuplicateKeyError as exc:
        raise DuplicateKey(f"Duplicate key in {collection_name}") from exc


def delete_document(collection_name: str, document_id: Any) -> bool:
    _id = to_object_id(document_id)
    if _id is None:
        return False
    result = get_db()[collection_name].delete_one({"_id": _id})
    return result.deleted_count == 1


# ---------- Products ----------

def _name_key(name: str) -> str:
    return name.strip().casefold()


def insert_product(product: Union[BaseModel, dict]) -> dict:
    if isinstance(product, BaseModel):
        product = product.model_dump()
    doc = dict(product)
    doc["nameKey"] = _name_key(doc["name"])
    try:
        return serialize_document(insert_document(PRODUCTS, doc))
    except DuplicateKey as exc:
        raise DuplicateKey("Product name must be unique") from exc


def find_product_by_id(product_id: Any) -> Optional[dict]:
    return serialize_document(find_document_by_id(PRODUCTS, product_id))


def find_product_by_name(name: str) -> Optional[dict]:
    return serialize_document(get_db()[PRODUCTS].find_one({"nameKey": _name_key(name)}))


def update_product(product_id: Any, fields: dict) -> Optional[dict]:
    changes = dict(fields)
    if "name" in changes:
        changes["nameKey"] = _name_key(changes["name"])
    try:
        return serialize_document(update_document(PRODUCTS, product_id, changes))
    except DuplicateKey as exc:
        raise DuplicateKey("Product name must be unique") from exc


def delete_product(product_id: Any) -> bool:
    return delete_document(PRODUCTS, product_id)


def search_products(query: SearchQuery) -> Dict[str, Any]:
    collection = get_db()[PRODUCTS]
    total = collection.count_documents(query.filter)
    cursor = collection.find(query.filter).sort(query.sort).skip(query.skip).limit(query.limit)
    return {
        "items": [serialize_document(doc) for doc in cursor],
        "total": total,
        "pageSize": query.page_size,
        "pageNumber": query.page_number,
        "totalPages": total_pages(total, query.page_size),
    }


def list_categories() -> List[str]:
    return sorted(get_db()[PRODUCTS].distinct("category"))


# ---------- Users ----------

def normalize_roles(value: Any) -> List[str]:
    """Collapse a stored roles field (string, list or missing) into a non-empty list."""
    if isinstance(value, str):
        candidates = [value]
    elif isinstance(value, (list, tuple, set, frozenset)):
        candidates = list(value)
    else:
        candidates = []
    roles: List[str] = []
    for role in candidates:
        if isinstance(role, str):
            role = role.strip()
            if role and role not in roles:
                roles.append(role)
    return roles or [DEFAULT_ROLE]


def sanitize_user(doc: Optional[dict]) -> Optional[dict]:
    if doc is None:
        return None
    user = serialize_document(doc)
    user["roles"] = normalize_roles(doc.get("roles"))
    return user


def normalize_email(email: str) -> str:
    return email.strip().lower()


def insert_user(full_name: str, email: str, roles: Any = None) -> dict:
    doc = {
        "fullName": full_name.strip(),
        "email": normalize_email(email),
        "roles": normalize_roles(roles),
    }
    try:
        return sanitize_user(insert_document(USERS, doc))
    except DuplicateKey as exc:
        raise DuplicateKey("Email already in use") from exc


def find_user_by_id(user_id: Any) -> Optional[dict]:
    return sanitize_user(find_document_by_id(USERS, user_id))


def find_user_by_email(email: str) -> Optional[dict]:
    return sanitize_user(get_db()[USERS].find_one({"email": normalize_email(email)}))


def find_all_users() -> List[dict]:
    return [sanitize_user(doc) for doc in get_db()[USERS].find().sort("email", ASCENDING)]


def update_user_by_id(user_id: Any, fields: dict) -> Optional[dict]:
    changes = dict(fields)
    if "email" in changes:
        changes["email"] = normalize_email(changes["email"])
    if "roles" in changes:
        changes["roles"] = normalize_roles(changes["roles"])
    try:
        return sanitize_user(update_document(USERS, user_id, changes))
    except DuplicateKey as exc:
        raise DuplicateKey("Email already in use") from exc


def set_user_roles(user_id: Any, roles: Any) -> Optional[dict]:
    return update_user_by_id(user_id, {"roles": roles})


# ---------- Sessions ----------

def insert_session(token: str, user_id: str, expires_at: datetime) -> dict:
    return insert_document(SESSIONS, Session(token=token, user_id=user_id, expires_at=expires_at))


def find_session_by_token(token: str) -> Optional[dict]:
    return get_db()[SESSIONS].find_one({"token": token})


def delete_session(token: str) -> bool:
    return get_db()[SESSIONS].delete_one({"token": token}).deleted_count == 1


# ---------- Credential accounts ----------

def insert_account(user_id: str, password_hash: str, salt: str) -> dict:
    return insert_document(ACCOUNTS, Account(user_id=user_id, password_hash=password_hash, salt=salt))


def find_credential_account(user_id: str) -> Optional[dict]:
    return get_db()[ACCOUNTS].find_one({"user_id": user_id, "provider_id": "credential"})


def update_account_password(user_id: str, password_hash: str, salt: str) -> bool:
    result = get_db()[ACCOUNTS].update_one(
        {"user_id": user_id, "provider_id": "credential"},
        {"$set": {"password_hash": password_hash, "salt": salt, "lastUpdatedOn": utcnow()}},
    )
    return result.matched_count == 1
