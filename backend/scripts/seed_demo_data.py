"""
Seed a few products and locations, then drive the ledger through
initial stock, an adjustment and a transfer.

Safe to re-run: existing SKUs / location names are reused, and the ledger
steps are only applied when the demo product has no stock yet.

Run (from backend/):
  PYTHONPATH=. python scripts/seed_demo_data.py
"""

from __future__ import annotations

import asyncio

from sqlalchemy import select

from core import catalog, ledger
from db.database import async_session_maker, create_db_and_tables
from db.inventory.stock import StockLevel


PRODUCTS = [
    {"name": "Espresso Beans 1kg", "sku": "COF-ESP-1KG", "category": "Coffee", "unit_of_measurement": "bag", "price": 24.5},
    {"name": "Oat Milk 1L", "sku": "MLK-OAT-1L", "category": "Dairy Alternatives", "unit_of_measurement": "carton", "price": 2.9},
    {"name": "Paper Cup 12oz", "sku": "CUP-PAP-12", "category": "Packaging", "unit_of_measurement": "pcs", "price": 0.08},
]

LOCATIONS = [
    {"name": "Central Warehouse", "address": "1 Depot Road", "contact_person": "Dana"},
    {"name": "Downtown Store", "address": "42 Main Street", "contact_person": "Avi"},
]


async def main() -> None:
    await create_db_and_tables()

    async with async_session_maker() as db:
        products = []
        for p in PRODUCTS:
            existing = await catalog.find_product_by_sku(db, p["sku"])
            if existing:
                products.append(existing)
                continue
            products.append(await catalog.create_product(db, **p))
        print(f"Products: {len(products)}")

        locations = []
        for loc in LOCATIONS:
            existing = await catalog.find_location_by_name(db, loc["name"])
            if existing:
                locations.append(existing)
                continue
            locations.append(await catalog.create_location(db, **loc))
        print(f"Locations: {len(locations)}")

        warehouse, store = locations
        beans = products[0]

        res = await db.execute(select(StockLevel).where(StockLevel.product_id == beans.id))
        if res.scalars().first():
            print("Demo stock already present, skipping ledger steps")
            return

        for product in products:
            out = await ledger.set_initial_stock(db, product.id, warehouse.id, 100)
            print(f"  initial {product.sku} @ {warehouse.name}: {out['stock_level'].quantity}")

        out = await ledger.adjust_stock(db, beans.id, warehouse.id, "damage", -3, reason="Torn bags", adjusted_by="seed")
        print(f"  damage {beans.sku}: now {out['adjustment'].current_stock}")

        out = await ledger.transfer_stock(db, beans.id, warehouse.id, store.id, 20, requested_by="seed")
        print(
            f"  transfer {beans.sku}: {warehouse.name}={out['source_stock_level'].quantity} "
            f"{store.name}={out['destination_stock_level'].quantity}"
        )


if __name__ == "__main__":
    asyncio.run(main())
