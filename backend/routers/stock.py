from typing import Dict

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from core import ledger
from db.database import get_async_session
from schemas.stock import InitialStockLevelCreate, StockAdjustmentCreate, StockTransferCreate

router = APIRouter()


@router.post("/stocklevels/initial", response_model=Dict)
async def set_initial_stock_level(
    payload: InitialStockLevelCreate,
    db: AsyncSession = Depends(get_async_session),
):
    out = await ledger.set_initial_stock(db, payload.product_id, payload.location_id, payload.quantity)
    refs = {"product": out["product"].to_ref, "location": out["location"].to_ref}
    return {
        "success": True,
        "message": "Initial stock level set successfully",
        "data": {
            "stock_level": {**out["stock_level"].to_schema, **refs},
            "stock_adjustment": {**out["adjustment"].to_schema, **refs},
        },
    }


@router.post("/stockadjustments", response_model=Dict, status_code=status.HTTP_201_CREATED)
async def record_stock_adjustment(
    payload: StockAdjustmentCreate,
    db: AsyncSession = Depends(get_async_session),
):
    out = await ledger.adjust_stock(
        db,
        payload.product_id,
        payload.location_id,
        payload.type,
        payload.quantity_change,
        reason=payload.reason,
        adjusted_by=payload.adjusted_by,
    )
    return {
        "success": True,
        "message": "Stock adjustment recorded successfully",
        "data": {
            **out["adjustment"].to_schema,
            "product": out["product"].to_ref,
            "location": out["location"].to_ref,
        },
    }


@router.post("/stocktransfers", response_model=Dict, status_code=status.HTTP_201_CREATED)
async def initiate_stock_transfer(
    payload: StockTransferCreate,
    db: AsyncSession = Depends(get_async_session),
):
    out = await ledger.transfer_stock(
        db,
        payload.product_id,
        payload.from_location_id,
        payload.to_location_id,
        payload.quantity,
        requested_by=payload.requested_by,
    )
    return {
        "success": True,
        "message": "Stock transfer completed successfully",
        "data": {
            **out["transfer"].to_schema,
            "product": out["product"].to_ref,
            "from_location": out["from_location"].to_ref,
            "to_location": out["to_location"].to_ref,
            "source_quantity": int(out["source_stock_level"].quantity),
            "destination_quantity": int(out["destination_stock_level"].quantity),
        },
    }
