"""
Stock ledger (any number of locations).

Models:
- StockLevel (quantity per product per location, one row per pair)
- StockAdjustment (append-only signed deltas against one stock level)
- StockTransfer (append-only moves of quantity between two locations)
"""
