"""Read side of the ledger: product timelines, low-stock totals and per-product/per-location listings."""
from typing import Dict, List

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from core.catalog import get_location, get_product
from db.location import Location
from db.product import Product
from db.inventory.adjustment import StockAdjustment
from db.inventory.stock import StockLevel
from db.inventory.transfer import StockTransfer


def _adjustment_entry(adj: StockAdjustment, location: Location) -> Dict:
    return {
        "kind": "adjustment",
        "id": adj.id,
        "adjustment_type": adj.type,
        "location": location.to_ref,
        "quantity_change": int(adj.quantity_change),
        "current_stock": int(adj.current_stock),
        "reason": adj.reason,
        "adjusted_by": adj.adjusted_by,
        "timestamp": adj.timestamp,
    }


def _transfer_entry(tr: StockTransfer, source: Location, destination: Location) -> Dict:
    return {
        "kind": "transfer",
        "id": tr.id,
        "from_location": source.to_ref,
        "to_location": destination.to_ref,
        "quantity": int(tr.quantity),
        "status": tr.status,
        "timestamp": tr.request_timestamp,
        "completion_timestamp": tr.completion_timestamp,
        "requested_by": tr.requested_by,
    }


async def get_history(db: AsyncSession, product_id: str) -> List[Dict]:
    """Adjustments and transfers for one product, newest first.

    Adjustments are ordered by ``timestamp`` and transfers by ``request_timestamp``;
    equal timestamps keep the order they were read in.
    """
    product = await get_product(db, product_id)

    adj_res = await db.execute(
        select(StockAdjustment, Location)
        .join(Location, StockAdjustment.location_id == Location.id)
        .where(StockAdjustment.product_id == product.id)
    )
    entries = [_adjustment_entry(adj, loc) for (adj, loc) in adj_res.all()]

    FromLocation = aliased(Location)
    ToLocation = aliased(Location)
    tr_res = await db.execute(
        select(StockTransfer, FromLocation, ToLocation)
        .join(FromLocation, StockTransfer.from_location_id == FromLocation.id)
        .join(ToLocation, StockTransfer.to_location_id == ToLocation.id)
        .where(StockTransfer.product_id == product.id)
    )
    entries.extend(_transfer_entry(tr, src, dst) for (tr, src, dst) in tr_res.all())

    # stable sort: ties keep read order
    return sorted(entries, key=lambda e: e["timestamp"], reverse=True)


async def get_low_stock(db: AsyncSession, threshold: int) -> List[Dict]:
    """Active products whose stock summed over every location is below ``threshold``.

    Products that were never stocked anywhere count as a total of 0.
    """
    total = func.coalesce(func.sum(StockLevel.quantity), 0)
    stmt = (
        select(Product, total.label("total_stock"))
        .outerjoin(StockLevel, StockLevel.product_id == Product.id)
        .where(Product.is_active == True)  # noqa: E712
        .group_by(Product.id)
        .having(total < int(threshold))
        .order_by(total.asc(), Product.name.asc())
    )
    res = await db.execute(stmt)

    out = []
    for product, total_stock in res.all():
        out.append({
            "product_id": product.id,
            "name": product.name,
            "sku": product.sku,
            "category": product.category,
            "price": float(product.price) if product.price is not None else None,
            "total_stock": int(total_stock or 0),
        })
    return out


async def get_stock_levels_for_product(db: AsyncSession, product_id: str) -> List[Dict]:
    product = await get_product(db, product_id)
    res = await db.execute(
        select(StockLevel, Location)
        .join(Location, StockLevel.location_id == Location.id)
        .where(StockLevel.product_id == product.id)
        .order_by(Location.name.asc())
    )
    return [
        {
            **stock.to_schema,
            "location": {
                "id": loc.id,
                "name": loc.name,
                "address": loc.address,
                "contact_person": loc.contact_person,
            },
        }
        for (stock, loc) in res.all()
    ]


async def get_stock_levels_for_location(db: AsyncSession, location_id: str) -> List[Dict]:
    location = await get_location(db, location_id)
    res = await db.execute(
        select(StockLevel, Product)
        .join(Product, StockLevel.product_id == Product.id)
        .where(StockLevel.location_id == location.id)
        .order_by(Product.name.asc())
    )
    return [
        {
            **stock.to_schema,
            "product": {
                "id": prod.id,
                "name": prod.name,
                "sku": prod.sku,
                "price": float(prod.price) if prod.price is not None else None,
                "category": prod.category,
                "unit_of_measurement": prod.unit_of_measurement,
            },
        }
        for (stock, prod) in res.all()
    ]
