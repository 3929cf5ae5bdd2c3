from .inventory_item import InventoryItem
from .transaction import Transaction
from .user import User

__all__ = ["InventoryItem", "Transaction", "User"]
