"""CRUD operations."""
