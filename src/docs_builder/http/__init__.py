"""HTTP clients for the docs build endpoints."""
