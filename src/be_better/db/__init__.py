"""SQLite persistence for the API server."""
