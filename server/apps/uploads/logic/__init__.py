"""Business logic layer for uploads app.

This package contains:
- The ingestion pipeline (authenticate, extract, address, store, schedule)
- Expiry tracking and startup reconciliation
"""
