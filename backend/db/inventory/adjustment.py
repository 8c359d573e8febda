from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, String

from core.ids import new_object_id
from ..database import Base, utcnow

ADJUSTMENT_TYPES = ("add", "remove", "damage", "loss", "initial")


class StockAdjustment(Base):
    __tablename__ = "stock_adjustments"
    __table_args__ = (
        CheckConstraint("current_stock >= 0", name="ck_stock_adjustments_current_stock_non_negative"),
        Index("ix_stock_adjustments_product_timestamp", "product_id", "timestamp"),
        Index("ix_stock_adjustments_location_timestamp", "location_id", "timestamp"),
    )

    id = Column(String(24), primary_key=True, default=new_object_id)
    product_id = Column(String(24), ForeignKey("products.id"), nullable=False)
    location_id = Column(String(24), ForeignKey("locations.id"), nullable=False)

    type = Column(String(16), nullable=False, index=True)  # see ADJUSTMENT_TYPES
    quantity_change = Column(Integer, nullable=False)
    current_stock = Column(Integer, nullable=False)  # quantity right after this change
    reason = Column(String(500), nullable=True)
    adjusted_by = Column(String(100), nullable=True)

    timestamp = Column(DateTime, nullable=False, default=utcnow, index=True)

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "product_id": self.product_id,
            "location_id": self.location_id,
            "type": self.type,
            "quantity_change": int(self.quantity_change),
            "current_stock": int(self.current_stock),
            "reason": self.reason,
            "adjusted_by": self.adjusted_by,
            "timestamp": self.timestamp,
        }
