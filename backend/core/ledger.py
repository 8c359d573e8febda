"""
Stock ledger: the only code allowed to change StockLevel.quantity.

Each public operation is one unit of work on the session it is given:
all reference checks run first, then every write (stock rows + audit record)
is committed together or rolled back together.

Quantity changes go through a conditional UPDATE (``quantity + delta >= 0``)
evaluated inside the transaction, so concurrent writers on the same
product/location pair cannot drive a row negative even if the value read
earlier has gone stale.
"""
import logging
from typing import Dict, Optional

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from core.catalog import get_location, get_product
from core.errors import InvalidStateError, NotFoundError, ValidationFailedError
from core.ids import new_object_id, normalize_id
from db.database import utcnow
from db.inventory.adjustment import ADJUSTMENT_TYPES, StockAdjustment
from db.inventory.stock import MAX_QUANTITY, StockLevel
from db.inventory.transfer import TRANSFER_COMPLETED, StockTransfer

logger = logging.getLogger(__name__)

INITIAL_STOCK_REASON = "Initial stock level setup"
QUANTITY_LIMIT_MESSAGE = f"Stock quantity cannot exceed {MAX_QUANTITY}"


def _check_result(current: int, delta: int, insufficient: str) -> None:
    if current + delta < 0:
        raise InvalidStateError(insufficient.format(current))
    if current + delta > MAX_QUANTITY:
        raise InvalidStateError(QUANTITY_LIMIT_MESSAGE)


def _insert(db: AsyncSession, table):
    if db.get_bind().dialect.name == "sqlite":
        return sqlite_insert(table)
    return pg_insert(table)


async def _lock_stock_level(db: AsyncSession, product_id: str, location_id: str) -> Optional[StockLevel]:
    """Read the pair's row inside the current transaction, locking it where the backend can."""
    stmt = (
        select(StockLevel)
        .where(StockLevel.product_id == product_id, StockLevel.location_id == location_id)
        .execution_options(populate_existing=True)
    )
    if db.get_bind().dialect.name != "sqlite":
        stmt = stmt.with_for_update()
    res = await db.execute(stmt)
    return res.scalar_one_or_none()


async def _lock_stock_levels(db: AsyncSession, product_id: str, location_ids) -> Dict[str, StockLevel]:
    """Lock several of a product's rows in one statement, ordered by location_id.

    Two transfers running in opposite directions take the locks in the same
    order, so one waits for the other instead of deadlocking.
    """
    stmt = (
        select(StockLevel)
        .where(StockLevel.product_id == product_id, StockLevel.location_id.in_(list(location_ids)))
        .order_by(StockLevel.location_id.asc())
        .execution_options(populate_existing=True)
    )
    if db.get_bind().dialect.name != "sqlite":
        stmt = stmt.with_for_update()
    res = await db.execute(stmt)
    return {row.location_id: row for row in res.scalars().all()}


async def _ensure_stock_level(db: AsyncSession, product_id: str, location_id: str) -> bool:
    """Find-or-create the pair's row. Returns True when this call created it."""
    stock_tbl = StockLevel.__table__
    stmt = (
        _insert(db, stock_tbl)
        .values(
            id=new_object_id(),
            product_id=product_id,
            location_id=location_id,
            quantity=0,
            last_updated=utcnow(),
        )
        .on_conflict_do_nothing(index_elements=["product_id", "location_id"])
        .returning(stock_tbl.c.id)
    )
    inserted = (await db.execute(stmt)).first()
    return inserted is not None


async def _apply_delta(db: AsyncSession, product_id: str, location_id: str, delta: int) -> Optional[int]:
    """Add ``delta`` to the pair's quantity unless the result would leave ``0..MAX_QUANTITY``.

    Returns the new quantity, or None when the row is missing or the guard rejected the change.
    """
    stock_tbl = StockLevel.__table__
    stmt = (
        update(stock_tbl)
        .where(
            stock_tbl.c.product_id == product_id,
            stock_tbl.c.location_id == location_id,
            stock_tbl.c.quantity + delta >= 0,
            stock_tbl.c.quantity + delta <= MAX_QUANTITY,
        )
        .values(quantity=stock_tbl.c.quantity + delta, last_updated=utcnow())
        .returning(stock_tbl.c.quantity)
    )
    row = (await db.execute(stmt)).first()
    return int(row.quantity) if row else None


async def _reload(db: AsyncSession, product_id: str, location_id: str) -> StockLevel:
    res = await db.execute(
        select(StockLevel)
        .where(StockLevel.product_id == product_id, StockLevel.location_id == location_id)
        .execution_options(populate_existing=True)
    )
    return res.scalar_one()


async def set_initial_stock(db: AsyncSession, product_id: str, location_id: str, quantity: int) -> Dict:
    """Create or overwrite the stock level for a pair and record an ``initial`` adjustment.

    The adjustment's quantity_change is the difference from the previous quantity
    (0 for a new row), so repeating the call with the same quantity logs a zero delta.
    """
    quantity = int(quantity)
    if quantity < 0:
        raise ValidationFailedError(errors=["quantity: must be greater than or equal to 0"])
    if quantity > MAX_QUANTITY:
        raise ValidationFailedError(errors=[f"quantity: must be less than or equal to {MAX_QUANTITY}"])

    product = await get_product(db, product_id)
    location = await get_location(db, location_id)
    pid, lid = product.id, location.id

    try:
        created = await _ensure_stock_level(db, pid, lid)
        stock = await _lock_stock_level(db, pid, lid)
        old_quantity = 0 if created else int(stock.quantity or 0)

        now = utcnow()
        stock.quantity = quantity
        stock.last_updated = now

        adjustment = StockAdjustment(
            id=new_object_id(),
            product_id=pid,
            location_id=lid,
            type="initial",
            quantity_change=quantity - old_quantity,
            current_stock=quantity,
            reason=INITIAL_STOCK_REASON,
            timestamp=now,
        )
        db.add(adjustment)
        await db.commit()
    except Exception:
        await db.rollback()
        logger.exception("set_initial_stock failed product=%s location=%s", pid, lid)
        raise

    logger.info(
        "initial stock set product=%s location=%s quantity=%s change=%s",
        pid, lid, quantity, quantity - old_quantity,
    )
    return {
        "product": product,
        "location": location,
        "stock_level": stock,
        "adjustment": adjustment,
        "created": created,
    }


async def adjust_stock(
    db: AsyncSession,
    product_id: str,
    location_id: str,
    type: str,
    quantity_change: int,
    reason: Optional[str] = None,
    adjusted_by: Optional[str] = None,
) -> Dict:
    """Apply a signed delta to an existing stock level and append the matching adjustment.

    ``type`` only classifies the change; the sign always comes from ``quantity_change``.
    """
    delta = int(quantity_change)
    if type not in ADJUSTMENT_TYPES:
        raise ValidationFailedError(errors=[f"type: must be one of {', '.join(ADJUSTMENT_TYPES)}"])
    if abs(delta) > MAX_QUANTITY:
        raise ValidationFailedError(errors=[f"quantity_change: must be between -{MAX_QUANTITY} and {MAX_QUANTITY}"])

    product = await get_product(db, product_id)
    location = await get_location(db, location_id)
    pid, lid = product.id, location.id

    try:
        stock = await _lock_stock_level(db, pid, lid)
        if not stock:
            raise NotFoundError("Stock level entry not found for this product and location")

        _check_result(int(stock.quantity or 0), delta, "Insufficient stock. Current quantity: {}")

        new_quantity = await _apply_delta(db, pid, lid, delta)
        if new_quantity is None:
            # Row changed between the read and the guarded write.
            stock = await _reload(db, pid, lid)
            _check_result(int(stock.quantity), delta, "Insufficient stock. Current quantity: {}")
            raise InvalidStateError("Stock level changed concurrently, retry the adjustment")

        adjustment = StockAdjustment(
            id=new_object_id(),
            product_id=pid,
            location_id=lid,
            type=type,
            quantity_change=delta,
            current_stock=new_quantity,
            reason=reason,
            adjusted_by=adjusted_by,
            timestamp=utcnow(),
        )
        db.add(adjustment)
        await db.flush()
        stock = await _reload(db, pid, lid)
        await db.commit()
    except (NotFoundError, InvalidStateError) as e:
        await db.rollback()
        logger.warning("adjustment rejected product=%s location=%s change=%s: %s", pid, lid, delta, e.message)
        raise
    except Exception:
        await db.rollback()
        logger.exception("adjust_stock failed product=%s location=%s", pid, lid)
        raise

    logger.info(
        "stock adjusted product=%s location=%s type=%s change=%s quantity=%s",
        pid, lid, type, delta, new_quantity,
    )
    return {
        "product": product,
        "location": location,
        "stock_level": stock,
        "adjustment": adjustment,
    }


async def transfer_stock(
    db: AsyncSession,
    product_id: str,
    from_location_id: str,
    to_location_id: str,
    quantity: int,
    requested_by: Optional[str] = None,
) -> Dict:
    """Move ``quantity`` of a product from one location to another.

    The transfer record, the source decrement and the destination increment
    (creating the destination row if needed) commit together. Transfers complete
    immediately; no pending state is ever visible.
    """
    qty = int(quantity)
    if normalize_id(from_location_id) == normalize_id(to_location_id):
        raise InvalidStateError("From location and to location cannot be the same")
    if qty <= 0:
        raise ValidationFailedError(errors=["quantity: must be at least 1"])
    if qty > MAX_QUANTITY:
        raise ValidationFailedError(errors=[f"quantity: must be less than or equal to {MAX_QUANTITY}"])

    product = await get_product(db, product_id)
    source = await get_location(db, from_location_id, label="From location")
    destination = await get_location(db, to_location_id, label="To location")
    pid, src_id, dst_id = product.id, source.id, destination.id

    try:
        # Destination row first, then both rows locked together.
        await _ensure_stock_level(db, pid, dst_id)
        rows = await _lock_stock_levels(db, pid, (src_id, dst_id))
        source_stock = rows.get(src_id)
        if not source_stock:
            raise NotFoundError("No stock found at source location")

        available = int(source_stock.quantity or 0)
        if available < qty:
            raise InvalidStateError(f"Insufficient stock. Available: {available}")
        if int(rows[dst_id].quantity or 0) + qty > MAX_QUANTITY:
            raise InvalidStateError(QUANTITY_LIMIT_MESSAGE)

        now = utcnow()
        transfer = StockTransfer(
            id=new_object_id(),
            product_id=pid,
            from_location_id=src_id,
            to_location_id=dst_id,
            quantity=qty,
            requested_by=requested_by,
            request_timestamp=now,
        )
        transfer.set_status(TRANSFER_COMPLETED, when=now)
        db.add(transfer)

        remaining = await _apply_delta(db, pid, src_id, -qty)
        if remaining is None:
            source_stock = await _reload(db, pid, src_id)
            raise InvalidStateError(f"Insufficient stock. Available: {int(source_stock.quantity)}")

        received = await _apply_delta(db, pid, dst_id, qty)
        if received is None:
            raise InvalidStateError(QUANTITY_LIMIT_MESSAGE)

        await db.flush()
        source_stock = await _reload(db, pid, src_id)
        destination_stock = await _reload(db, pid, dst_id)
        await db.commit()
    except (NotFoundError, InvalidStateError) as e:
        await db.rollback()
        logger.warning(
            "transfer rejected product=%s from=%s to=%s quantity=%s: %s",
            pid, src_id, dst_id, qty, e.message,
        )
        raise
    except Exception:
        await db.rollback()
        logger.exception("transfer_stock failed product=%s from=%s to=%s", pid, src_id, dst_id)
        raise

    logger.info(
        "stock transferred product=%s from=%s to=%s quantity=%s (source=%s destination=%s)",
        pid, src_id, dst_id, qty, remaining, received,
    )
    return {
        "product": product,
        "from_location": source,
        "to_location": destination,
        "transfer": transfer,
        "source_stock_level": source_stock,
        "destination_stock_level": destination_stock,
    }
