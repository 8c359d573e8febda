from sqlalchemy import Boolean, Column, DateTime, Numeric, String, Text

from core.ids import new_object_id
from .database import Base, utcnow


class Product(Base):
    __tablename__ = "products"

    id = Column(String(24), primary_key=True, default=new_object_id)
    name = Column(String(255), nullable=False, index=True)
    sku = Column(String(50), nullable=False, unique=True, index=True)  # stored upper-cased
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=True, index=True)
    unit_of_measurement = Column(String(20), nullable=True, default="pcs")
    price = Column(Numeric(12, 2), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "name": self.name,
            "sku": self.sku,
            "description": self.description,
            "category": self.category,
            "unit_of_measurement": self.unit_of_measurement,
            "price": float(self.price) if self.price is not None else None,
            "is_active": bool(self.is_active),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @property
    def to_ref(self):
        return {"id": self.id, "name": self.name, "sku": self.sku}
