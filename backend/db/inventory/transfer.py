from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, String

from core.ids import new_object_id
from ..database import Base, utcnow

TRANSFER_PENDING = "pending"
TRANSFER_COMPLETED = "completed"
TRANSFER_CANCELLED = "cancelled"
TRANSFER_STATUSES = (TRANSFER_PENDING, TRANSFER_COMPLETED, TRANSFER_CANCELLED)


class StockTransfer(Base):
    __tablename__ = "stock_transfers"
    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_stock_transfers_quantity_positive"),
        CheckConstraint("from_location_id <> to_location_id", name="ck_stock_transfers_distinct_locations"),
        Index("ix_stock_transfers_product_requested", "product_id", "request_timestamp"),
    )

    id = Column(String(24), primary_key=True, default=new_object_id)
    product_id = Column(String(24), ForeignKey("products.id"), nullable=False)
    from_location_id = Column(String(24), ForeignKey("locations.id"), nullable=False, index=True)
    to_location_id = Column(String(24), ForeignKey("locations.id"), nullable=False, index=True)

    quantity = Column(Integer, nullable=False)
    status = Column(String(16), nullable=False, default=TRANSFER_PENDING, index=True)
    requested_by = Column(String(100), nullable=True)

    request_timestamp = Column(DateTime, nullable=False, default=utcnow, index=True)
    # Set exactly when status leaves pending (completed or cancelled).
    completion_timestamp = Column(DateTime, nullable=True)

    def set_status(self, status: str, when=None) -> None:
        if status not in TRANSFER_STATUSES:
            raise ValueError(f"unknown transfer status: {status}")
        self.status = status
        if status in (TRANSFER_COMPLETED, TRANSFER_CANCELLED):
            self.completion_timestamp = when or utcnow()

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "product_id": self.product_id,
            "from_location_id": self.from_location_id,
            "to_location_id": self.to_location_id,
            "quantity": int(self.quantity),
            "status": self.status,
            "requested_by": self.requested_by,
            "request_timestamp": self.request_timestamp,
            "completion_timestamp": self.completion_timestamp,
        }
