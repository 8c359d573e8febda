from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from schemas.common import strip_nullable, strip_required


class LocationCreate(BaseModel):
    name: str = Field(max_length=255)
    address: Optional[str] = Field(default=None, max_length=500)
    contact_person: Optional[str] = Field(default=None, max_length=100)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        return strip_required(v)

    @field_validator("address", "contact_person")
    @classmethod
    def _strip_optional(cls, v: Optional[str]) -> Optional[str]:
        return strip_nullable(v)


class LocationUpdate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=255)
    address: Optional[str] = Field(default=None, max_length=500)
    contact_person: Optional[str] = Field(default=None, max_length=100)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        if not v:
            raise ValueError("cannot be empty")
        return v

    @field_validator("address", "contact_person")
    @classmethod
    def _strip_optional(cls, v: Optional[str]) -> Optional[str]:
        return strip_nullable(v)

    @model_validator(mode="after")
    def _at_least_one_field(self):
        if not self.model_dump(exclude_unset=True):
            raise ValueError("at least one field must be provided")
        return self
