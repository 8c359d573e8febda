from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from schemas.common import strip_nullable, strip_required


class ProductCreate(BaseModel):
    name: str = Field(max_length=255)
    sku: str = Field(max_length=50)
    description: Optional[str] = Field(default=None, max_length=1000)
    category: Optional[str] = Field(default=None, max_length=100)
    unit_of_measurement: Optional[str] = Field(default=None, max_length=20)
    price: float = Field(ge=0)
    is_active: bool = True

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        return strip_required(v)

    @field_validator("sku")
    @classmethod
    def _sku_upper(cls, v: str) -> str:
        return strip_required(v).upper()

    @field_validator("description", "category", "unit_of_measurement")
    @classmethod
    def _strip_optional(cls, v: Optional[str]) -> Optional[str]:
        return strip_nullable(v)


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = Field(default=None, max_length=1000)
    category: Optional[str] = Field(default=None, max_length=100)
    unit_of_measurement: Optional[str] = Field(default=None, max_length=20)
    price: Optional[float] = Field(default=None, ge=0)
    is_active: Optional[bool] = None

    # Omitted fields stay as they are; an explicit null is not a way to clear one.
    @field_validator("*", mode="before")
    @classmethod
    def _reject_null(cls, v):
        if v is None:
            raise ValueError("cannot be null")
        return v

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("cannot be empty")
        return v

    @model_validator(mode="after")
    def _at_least_one_field(self):
        if not self.model_dump(exclude_unset=True):
            raise ValueError("at least one field must be provided")
        return self
