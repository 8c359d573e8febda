from typing import Dict

from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from core import catalog, history
from core.ids import OBJECT_ID_PATTERN
from db.database import get_async_session
from schemas.locations import LocationCreate, LocationUpdate

router = APIRouter()


@router.post("/", response_model=Dict, status_code=status.HTTP_201_CREATED)
async def create_location(
    payload: LocationCreate,
    db: AsyncSession = Depends(get_async_session),
):
    location = await catalog.create_location(db, **payload.model_dump())
    return {"success": True, "message": "Location created successfully", "data": location.to_schema}


@router.get("/", response_model=Dict)
async def list_locations(db: AsyncSession = Depends(get_async_session)):
    locations = await catalog.list_locations(db)
    return {"success": True, "count": len(locations), "data": [loc.to_schema for loc in locations]}


@router.get("/{location_id}/stock", response_model=Dict)
async def get_location_stock_levels(
    location_id: str = Path(..., pattern=OBJECT_ID_PATTERN),
    db: AsyncSession = Depends(get_async_session),
):
    rows = await history.get_stock_levels_for_location(db, location_id)
    return {"success": True, "message": "Location stock levels retrieved successfully", "data": rows}


@router.get("/{location_id}", response_model=Dict)
async def get_location(
    location_id: str = Path(..., pattern=OBJECT_ID_PATTERN),
    db: AsyncSession = Depends(get_async_session),
):
    location = await catalog.get_location(db, location_id)
    return {"success": True, "data": location.to_schema}


@router.put("/{location_id}", response_model=Dict)
async def update_location(
    payload: LocationUpdate,
    location_id: str = Path(..., pattern=OBJECT_ID_PATTERN),
    db: AsyncSession = Depends(get_async_session),
):
    location = await catalog.update_location(db, location_id, payload.model_dump(exclude_unset=True))
    return {"success": True, "message": "Location updated successfully", "data": location.to_schema}


@router.delete("/{location_id}", response_model=Dict)
async def delete_location(
    location_id: str = Path(..., pattern=OBJECT_ID_PATTERN),
    db: AsyncSession = Depends(get_async_session),
):
    await catalog.delete_location(db, location_id)
    return {"success": True, "message": "Location deleted successfully"}
