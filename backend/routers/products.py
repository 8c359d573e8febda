from typing import Dict

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from core import catalog, history
from core.ids import OBJECT_ID_PATTERN
from db.database import get_async_session
from schemas.products import ProductCreate, ProductUpdate

router = APIRouter()


@router.post("/", response_model=Dict, status_code=status.HTTP_201_CREATED)
async def create_product(
    payload: ProductCreate,
    db: AsyncSession = Depends(get_async_session),
):
    product = await catalog.create_product(db, **payload.model_dump())
    return {"success": True, "message": "Product created successfully", "data": product.to_schema}


@router.get("/", response_model=Dict)
async def list_products(db: AsyncSession = Depends(get_async_session)):
    products = await catalog.list_products(db)
    return {"success": True, "count": len(products), "data": [p.to_schema for p in products]}


# Declared before /{product_id} so "low-stock" is not read as an id.
@router.get("/low-stock", response_model=Dict)
async def get_low_stock_products(
    threshold: int = Query(..., ge=0),
    db: AsyncSession = Depends(get_async_session),
):
    rows = await history.get_low_stock(db, threshold)
    return {"success": True, "message": "Low stock products retrieved successfully", "data": rows}


@router.get("/{product_id}", response_model=Dict)
async def get_product(
    product_id: str = Path(..., pattern=OBJECT_ID_PATTERN),
    db: AsyncSession = Depends(get_async_session),
):
    product = await catalog.get_product(db, product_id)
    return {"success": True, "data": product.to_schema}


@router.put("/{product_id}", response_model=Dict)
async def update_product(
    payload: ProductUpdate,
    product_id: str = Path(..., pattern=OBJECT_ID_PATTERN),
    db: AsyncSession = Depends(get_async_session),
):
    product = await catalog.update_product(db, product_id, payload.model_dump(exclude_unset=True))
    return {"success": True, "message": "Product updated successfully", "data": product.to_schema}


@router.delete("/{product_id}", response_model=Dict)
async def delete_product(
    product_id: str = Path(..., pattern=OBJECT_ID_PATTERN),
    db: AsyncSession = Depends(get_async_session),
):
    await catalog.delete_product(db, product_id)
    return {"success": True, "message": "Product deleted successfully"}


@router.get("/{product_id}/stock", response_model=Dict)
async def get_product_stock_levels(
    product_id: str = Path(..., pattern=OBJECT_ID_PATTERN),
    db: AsyncSession = Depends(get_async_session),
):
    rows = await history.get_stock_levels_for_product(db, product_id)
    return {"success": True, "message": "Product stock levels retrieved successfully", "data": rows}


@router.get("/{product_id}/history", response_model=Dict)
async def get_product_history(
    product_id: str = Path(..., pattern=OBJECT_ID_PATTERN),
    db: AsyncSession = Depends(get_async_session),
):
    entries = await history.get_history(db, product_id)
    return {"success": True, "message": "Product history retrieved successfully", "data": entries}
