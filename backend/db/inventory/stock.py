from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint

from core.ids import new_object_id
from ..database import Base, utcnow

# Upper bound of the Integer column on PostgreSQL.
MAX_QUANTITY = 2**31 - 1


class StockLevel(Base):
    __tablename__ = "stock_levels"
    __table_args__ = (
        UniqueConstraint("product_id", "location_id", name="ux_stock_levels_product_location"),
        CheckConstraint("quantity >= 0", name="ck_stock_levels_quantity_non_negative"),
    )

    id = Column(String(24), primary_key=True, default=new_object_id)
    product_id = Column(String(24), ForeignKey("products.id"), nullable=False, index=True)
    location_id = Column(String(24), ForeignKey("locations.id"), nullable=False, index=True)

    quantity = Column(Integer, nullable=False, default=0, index=True)
    last_updated = Column(DateTime, nullable=False, default=utcnow)

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "product_id": self.product_id,
            "location_id": self.location_id,
            "quantity": int(self.quantity or 0),
            "last_updated": self.last_updated,
        }
