"""SQLite storage for the docs job queue."""
