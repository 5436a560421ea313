"""
Seed data generator -- creates demo order documents in MongoDB.

Generates:
  - ~300   customers      (signupDate stored as a native date)
  - ~3 000 orders         (orderDate stored as a native date)
  - ~3 000 orders_legacy  (same orders, orderDate stored as a 'YYYY-MM-DD' string)

The two order collections exercise both sides of the date handling:
pipelines on ``orders`` must not convert ``orderDate``, pipelines on
``orders_legacy`` must.

Run:  python -m pipelines.seed.seed_data
"""
from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone

from faker import Faker
from pymongo.database import Database

from src.db.connection import get_database

fake = Faker()

# ── Tunables ─────────────────────────────────────────────
NUM_CUSTOMERS = 300
NUM_ORDERS = 3_000

REGIONS = ["North", "South", "East", "West", "Central"]
TIERS = ["bronze", "silver", "gold"]
STATUSES = ["completed", "cancelled", "pending"]
STATUS_WEIGHTS = [0.70, 0.15, 0.15]
CATEGORIES = [
    "Electronics", "Clothing", "Home & Kitchen", "Books", "Sports",
    "Beauty", "Toys", "Automotive", "Grocery", "Garden",
    "Office", "Music",
]

# ── Helper: date ranges ─────────────────────────────────
DATE_START = datetime(2024, 1, 1, tzinfo=timezone.utc)
DATE_END = datetime(2025, 12, 31, tzinfo=timezone.utc)
DATE_RANGE_DAYS = (DATE_END - DATE_START).days


def _rand_ts() -> datetime:
    return DATE_START + timedelta(
        days=random.randint(0, DATE_RANGE_DAYS),
        hours=random.randint(0, 23),
        minutes=random.randint(0, 59),
    )


# ── Generators ───────────────────────────────────────────

def gen_customers(n: int = NUM_CUSTOMERS) -> list[dict]:
    return [
        {
            "customerId": cid,
            "name": fake.name(),
            "email": fake.email(),
            "region": random.choice(REGIONS),
            "tier": random.choice(TIERS),
            "signupDate": _rand_ts(),
        }
        for cid in range(1, n + 1)
    ]


def gen_orders(customers: list[dict], n: int = NUM_ORDERS) -> list[dict]:
    rows = []
    for oid in range(1, n + 1):
        customer = random.choice(customers)
        quantity = random.randint(1, 10)
        unit_price = round(random.uniform(5.0, 500.0), 2)
        rows.append({
            "orderId": oid,
            "customerId": customer["customerId"],
            "customerName": customer["name"],
            "region": customer["region"],
            "category": random.choice(CATEGORIES),
            "status": random.choices(STATUSES, weights=STATUS_WEIGHTS, k=1)[0],
            "quantity": quantity,
            "totalAmount": round(quantity * unit_price, 2),
            "orderDate": _rand_ts(),
        })
    return rows


def to_legacy(orders: list[dict]) -> list[dict]:
    """Same orders with ``orderDate`` flattened to a date string."""
    return [{**o, "orderDate": o["orderDate"].strftime("%Y-%m-%d")} for o in orders]


# ── Main ─────────────────────────────────────────────────

def seed(db: Database, num_customers: int = NUM_CUSTOMERS, num_orders: int = NUM_ORDERS, rng_seed: int = 42) -> dict[str, int]:
    """Drop and re-create the demo collections in *db*. Returns document counts."""
    Faker.seed(rng_seed)
    random.seed(rng_seed)

    customers = gen_customers(num_customers)
    orders = gen_orders(customers, num_orders)
    legacy = to_legacy(orders)

    counts: dict[str, int] = {}
    for name, docs in (("customers", customers), ("orders", orders), ("orders_legacy", legacy)):
        db.drop_collection(name)
        # insert_many adds _id to the dicts it is given
        db[name].insert_many([dict(d) for d in docs])
        counts[name] = len(docs)
        print(f"  ✓ {name}: {len(docs):,} documents")
    return counts


def main():
    print("═══ Seed Data Generator ═══")
    db = get_database()
    counts = seed(db)
    print(f"\nDone: seeded {counts['customers']:,} customers, {counts['orders']:,} orders, "
          f"{counts['orders_legacy']:,} legacy orders into '{db.name}'.")


if __name__ == "__main__":
    main()
