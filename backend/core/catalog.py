"""Products and locations: plain CRUD plus the uniqueness checks the ledger relies on."""
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import exists, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import ConflictError, NotFoundError
from core.ids import normalize_id
from db.location import Location
from db.product import Product
from db.inventory.adjustment import StockAdjustment
from db.inventory.stock import StockLevel
from db.inventory.transfer import StockTransfer

PRODUCT_UPDATABLE_FIELDS = ("name", "description", "category", "unit_of_measurement", "price", "is_active")
LOCATION_UPDATABLE_FIELDS = ("name", "address", "contact_person")


async def find_product(db: AsyncSession, product_id: str) -> Optional[Product]:
    res = await db.execute(select(Product).where(Product.id == normalize_id(product_id)))
    return res.scalar_one_or_none()


async def find_location(db: AsyncSession, location_id: str) -> Optional[Location]:
    res = await db.execute(select(Location).where(Location.id == normalize_id(location_id)))
    return res.scalar_one_or_none()


async def find_product_by_sku(db: AsyncSession, sku: str) -> Optional[Product]:
    res = await db.execute(select(Product).where(Product.sku == (sku or "").strip().upper()))
    return res.scalar_one_or_none()


async def find_location_by_name(db: AsyncSession, name: str) -> Optional[Location]:
    res = await db.execute(
        select(Location).where(func.lower(Location.name) == (name or "").strip().lower())
    )
    return res.scalar_one_or_none()


async def get_product(db: AsyncSession, product_id: str) -> Product:
    product = await find_product(db, product_id)
    if not product:
        raise NotFoundError("Product not found")
    return product


async def get_location(db: AsyncSession, location_id: str, label: str = "Location") -> Location:
    location = await find_location(db, location_id)
    if not location:
        raise NotFoundError(f"{label} not found")
    return location


# --- products ---------------------------------------------------------------


async def create_product(
    db: AsyncSession,
    *,
    name: str,
    sku: str,
    price,
    description: Optional[str] = None,
    category: Optional[str] = None,
    unit_of_measurement: Optional[str] = None,
    is_active: bool = True,
) -> Product:
    sku = (sku or "").strip().upper()
    if await find_product_by_sku(db, sku):
        raise ConflictError("Product with this SKU already exists")

    product = Product(
        name=name.strip(),
        sku=sku,
        description=description,
        category=category,
        unit_of_measurement=unit_of_measurement or "pcs",
        price=Decimal(str(price)),
        is_active=bool(is_active),
    )
    db.add(product)
    await db.commit()
    await db.refresh(product)
    return product


async def list_products(db: AsyncSession) -> List[Product]:
    res = await db.execute(select(Product).order_by(Product.name.asc()))
    return list(res.scalars().all())


async def update_product(db: AsyncSession, product_id: str, data: Dict) -> Product:
    product = await get_product(db, product_id)

    for field in PRODUCT_UPDATABLE_FIELDS:
        if field not in data or data[field] is None:
            continue
        value = data[field]
        if field == "price":
            value = Decimal(str(value))
        setattr(product, field, value)

    await db.commit()
    await db.refresh(product)
    return product


async def delete_product(db: AsyncSession, product_id: str) -> None:
    product = await get_product(db, product_id)

    referenced = await db.scalar(
        select(
            exists().where(StockLevel.product_id == product.id)
            | exists().where(StockAdjustment.product_id == product.id)
            | exists().where(StockTransfer.product_id == product.id)
        )
    )
    if referenced:
        raise ConflictError("Product has stock records and cannot be deleted")

    await db.delete(product)
    await db.commit()


# --- locations --------------------------------------------------------------


async def create_location(
    db: AsyncSession,
    *,
    name: str,
    address: Optional[str] = None,
    contact_person: Optional[str] = None,
) -> Location:
    name = (name or "").strip()
    if await find_location_by_name(db, name):
        raise ConflictError("Location with this name already exists")

    location = Location(name=name, address=address, contact_person=contact_person)
    db.add(location)
    await db.commit()
    await db.refresh(location)
    return location


async def list_locations(db: AsyncSession) -> List[Location]:
    res = await db.execute(select(Location).order_by(Location.name.asc()))
    return list(res.scalars().all())


async def update_location(db: AsyncSession, location_id: str, data: Dict) -> Location:
    location = await get_location(db, location_id)

    if data.get("name") is not None:
        name = data["name"].strip()
        clash = await find_location_by_name(db, name)
        if clash and clash.id != location.id:
            raise ConflictError("Location with this name already exists")
        location.name = name
    for field in LOCATION_UPDATABLE_FIELDS[1:]:
        if field in data:
            setattr(location, field, data[field])

    await db.commit()
    await db.refresh(location)
    return location


async def delete_location(db: AsyncSession, location_id: str) -> None:
    location = await get_location(db, location_id)

    referenced = await db.scalar(
        select(
            exists().where(StockLevel.location_id == location.id)
            | exists().where(StockAdjustment.location_id == location.id)
            | exists().where(
                or_(StockTransfer.from_location_id == location.id, StockTransfer.to_location_id == location.id)
            )
        )
    )
    if referenced:
        raise ConflictError("Location has stock records and cannot be deleted")

    await db.delete(location)
    await db.commit()
