# shopledger/models/transaction.py

from sqlalchemy import Column, Integer, String, Float, DateTime, Index, Text

from ..core.utils import utcnow
from ..database import Base, JSONType


class Transaction(Base):
    """A purchase or sale. Line items live on the row as a JSON array."""

    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True)
    transaction_id = Column(String(32), unique=True, nullable=False, index=True)
    type = Column(String(20), nullable=False)
    date = Column(DateTime(timezone=True), nullable=False)

    items = Column(JSONType, nullable=False, default=list)
    total_amount = Column(Float, nullable=False)
    # Searchable copy of the line item names, one per line
    item_names = Column(Text, nullable=False, default="")

    notes = Column(String(500), nullable=True)
    supplier = Column(JSONType, nullable=True)
    customer = Column(JSONType, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_transactions_type_date", "type", "date"),
    )

    def __repr__(self):
        return f"<Transaction {self.transaction_id} {self.type} {self.total_amount}>"
