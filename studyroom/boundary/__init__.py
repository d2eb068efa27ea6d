"""Boundary adapters: database, object storage."""
