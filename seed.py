"""
Seed the catalog with sample products and customer accounts for manual testing.

    python seed.py

Existing products (same name, ignoring case) and existing users are skipped;
existing users get their roles corrected.
"""

import logging

import database
from auth import ensure_admin_user, sign_up
from config import get_settings
from errors import DuplicateKey
from observability import setup_logging

logger = logging.getLogger("seed")

SAMPLE_PRODUCTS = [
    {"name": "Smartphone Pro Max", "description": "Flagship smartphone with advanced camera and 5G", "category": "Electronics", "price": 999.99},
    {"name": "Wireless Bluetooth Headphones", "description": "Noise-cancelling headphones with 30-hour battery life", "category": "Electronics", "price": 249.99},
    {"name": "Gaming Laptop", "description": "High-performance laptop for gaming and content creation", "category": "Electronics", "price": 1499.99},
    {"name": "Stainless Steel Blender", "description": "Professional-grade blender with 1500W motor", "category": "kitchen", "price": 129.99},
    {"name": "Coffee Maker Deluxe", "description": "Programmable coffee maker with thermal carafe", "category": "kitchen", "price": 89.99},
    {"name": "Air Fryer XL", "description": "Large capacity air fryer with digital controls", "category": "kitchen", "price": 149.99},
    {"name": "Modern Sofa", "description": "3-seater sofa with memory foam cushions", "category": "furniture", "price": 599.99},
    {"name": "Office Desk", "description": "Wooden desk with drawers and cable management", "category": "furniture", "price": 349.99},
    {"name": "Bookshelf", "description": "5-tier bookshelf with adjustable shelves", "category": "furniture", "price": 129.99},
    {"name": "Cotton T-Shirt", "description": "100% cotton t-shirt in various colors", "category": "clothing", "price": 19.99},
    {"name": "Winter Jacket", "description": "Waterproof winter jacket with insulated lining", "category": "clothing", "price": 129.99},
    {"name": "Running Shoes", "description": "Lightweight running shoes with cushioned sole", "category": "clothing", "price": 89.99},
    {"name": "Yoga Mat", "description": "Non-slip yoga mat with carrying strap", "category": "sports", "price": 29.99},
    {"name": "Camping Tent", "description": "4-person tent with waterproof coating", "category": "sports", "price": 199.99},
    {"name": "Hiking Backpack", "description": "30L backpack with hydration system", "category": "sports", "price": 79.99},
]

SAMPLE_USERS = [
    {"fullName": "John Customer", "email": "john.customer@example.com", "password": "password123", "roles": ["customer"]},
    {"fullName": "Jane Customer", "email": "jane.customer@example.com", "password": "password123", "roles": ["customer"]},
    {"fullName": "Bob Customer", "email": "bob.customer@example.com", "password": "password123", "roles": ["customer"]},
]


def seed_users(users=SAMPLE_USERS) -> dict:
    counts = {"created": 0, "updated": 0, "skipped": 0}
    for data in users:
        existing = database.find_user_by_email(data["email"])
        if existing is None:
            sign_up(data["fullName"], data["email"], data["password"], roles=data["roles"])
            counts["created"] += 1
            logger.info("Created user %s", data["email"])
        elif set(existing["roles"]) != set(data["roles"]) or existing["fullName"] != data["fullName"]:
            database.update_user_by_id(existing["id"], {"roles": data["roles"], "fullName": data["fullName"]})
            counts["updated"] += 1
            logger.info("Updated user %s", data["email"])
        else:
            counts["skipped"] += 1
    return counts


def seed_products(products=SAMPLE_PRODUCTS) -> dict:
    counts = {"created": 0, "skipped": 0}
    for product in products:
        try:
            database.insert_product(product)
        except DuplicateKey:
            counts["skipped"] += 1
            logger.info("Skipped existing product %s", product["name"])
        else:
            counts["created"] += 1
    return counts


def main() -> None:
    settings = get_settings()
    setup_logging(settings.log_level, "text")
    db = database.connect()
    try:
        ensure_admin_user()
        user_counts = seed_users()
        product_counts = seed_products()
        logger.info(
            "Seeding complete: users %s, products %s, totals users=%d products=%d, categories=%s",
            user_counts,
            product_counts,
            db[database.USERS].count_documents({}),
            db[database.PRODUCTS].count_documents({}),
            ", ".join(database.list_categories()),
        )
    finally:
        database.close_database()


if __name__ == "__main__":
    main()
