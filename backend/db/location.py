from sqlalchemy import Column, DateTime, String

from core.ids import new_object_id
from .database import Base, utcnow


class Location(Base):
    __tablename__ = "locations"

    id = Column(String(24), primary_key=True, default=new_object_id)
    name = Column(String(255), nullable=False, unique=True, index=True)
    address = Column(String(500), nullable=True)
    contact_person = Column(String(100), nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "contact_person": self.contact_person,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @property
    def to_ref(self):
        return {"id": self.id, "name": self.name}
