"""
Demo data for development databases: one admin, two customers and a few
orders. Rows go through the repositories so they are mirrored like any
other write. Never runs in production, and does nothing once the admin
account exists.
"""
from decimal import Decimal
from typing import Dict, List

import structlog

from services.order_service.repository import OrderRepository
from services.user_service.repository import UserRepository
from shared.security.passwords import PasswordHasher

logger = structlog.get_logger(__name__)

DEMO_PASSWORD = "password123"
ADMIN_EMAIL = "admin@example.com"

DEMO_USERS: List[Dict] = [
    {"name": "Admin User", "email": ADMIN_EMAIL, "phone": "1234567890", "address": "123 Admin St", "role": "admin"},
    {"name": "John Smith", "email": "john@example.com", "phone": "0987654321", "address": "456 Customer Ave"},
    {"name": "Jane Doe", "email": "jane@example.com", "phone": "5551234567", "address": "789 User Blvd"},
]

# (owner email, status, items)
DEMO_ORDERS = [
    (
        "john@example.com",
        "delivered",
        [
            {"product_name": "Smartphone Case", "quantity": 1, "price": Decimal("25.99")},
            {"product_name": "Wireless Earbuds", "quantity": 1, "price": Decimal("109.96")},
        ],
    ),
    (
        "john@example.com",
        "pending",
        [
            {"product_name": "USB Cable", "quantity": 2, "price": Decimal("9.99")},
            {"product_name": "Phone Charger", "quantity": 1, "price": Decimal("23.01")},
        ],
    ),
    (
        "jane@example.com",
        "processing",
        [{"product_name": "Bluetooth Speaker", "quantity": 1, "price": Decimal("89.50")}],
    ),
]


async def seed_demo_data(users: UserRepository, orders: OrderRepository, hasher: PasswordHasher) -> bool:
    """Returns True when the demo rows were inserted."""
    if await users.find_by_email(ADMIN_EMAIL):
        logger.info("demo_seed_skipped", reason="already_seeded")
        return False

    password = hasher.hash(DEMO_PASSWORD)
    ids = {}
    for user in DEMO_USERS:
        created = await users.create({**user, "password": password})
        ids[created["email"]] = created["id"]

    for email, status, items in DEMO_ORDERS:
        await orders.create(ids[email], status, items)

    logger.info("demo_seed_completed", users=len(DEMO_USERS), orders=len(DEMO_ORDERS))
    return True
