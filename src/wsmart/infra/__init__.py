"""Infrastructure adapters (database, storage, realtime)."""
