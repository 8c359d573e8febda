from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from db.inventory.stock import MAX_QUANTITY
from schemas.common import ObjectIdStr, strip_nullable


AdjustmentType = Literal["add", "remove", "damage", "loss", "initial"]


class InitialStockLevelCreate(BaseModel):
    product_id: ObjectIdStr
    location_id: ObjectIdStr
    quantity: int = Field(ge=0, le=MAX_QUANTITY)


class StockAdjustmentCreate(BaseModel):
    product_id: ObjectIdStr
    location_id: ObjectIdStr
    type: AdjustmentType
    quantity_change: int = Field(ge=-MAX_QUANTITY, le=MAX_QUANTITY)
    reason: Optional[str] = Field(default=None, max_length=500)
    adjusted_by: Optional[str] = Field(default=None, max_length=100)

    @field_validator("reason", "adjusted_by")
    @classmethod
    def _strip_nullable(cls, v: Optional[str]) -> Optional[str]:
        return strip_nullable(v)


class StockTransferCreate(BaseModel):
    product_id: ObjectIdStr
    from_location_id: ObjectIdStr
    to_location_id: ObjectIdStr
    quantity: int = Field(gt=0, le=MAX_QUANTITY)
    requested_by: Optional[str] = Field(default=None, max_length=100)

    @field_validator("requested_by")
    @classmethod
    def _strip_nullable(cls, v: Optional[str]) -> Optional[str]:
        return strip_nullable(v)

    @model_validator(mode="after")
    def _distinct_locations(self):
        if self.from_location_id == self.to_location_id:
            raise ValueError("From location and to location cannot be the same")
        return self
