"""FastAPI server holding the per-user remote ledger."""
