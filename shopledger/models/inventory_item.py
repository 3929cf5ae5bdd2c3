# shopledger/models/inventory_item.py

from sqlalchemy import Column, Integer, String, Float, DateTime, Index, CheckConstraint

from ..core.enums import DEFAULT_CATEGORY, DEFAULT_MIN_STOCK_LEVEL
from ..core.utils import utcnow
from ..database import Base


class InventoryItem(Base):
    """Stock position for one item name. total_value is derived, never set directly."""

    __tablename__ = "inventory_items"

    id = Column(Integer, primary_key=True)
    item_name = Column(String(200), unique=True, nullable=False, index=True)
    category = Column(String(100), nullable=False, default=DEFAULT_CATEGORY)

    current_stock = Column(Float, nullable=False, default=0)
    min_stock_level = Column(Float, nullable=False, default=DEFAULT_MIN_STOCK_LEVEL)
    unit_price = Column(Float, nullable=False, default=0)
    total_value = Column(Float, nullable=False, default=0)

    last_updated = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_inventory_items_category", "category"),
        CheckConstraint("current_stock >= 0", name="ck_inventory_items_stock_non_negative"),
    )

    def __repr__(self):
        return f"<InventoryItem {self.item_name!r} stock={self.current_stock} price={self.unit_price}>"
