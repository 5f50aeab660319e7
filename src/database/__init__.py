"""Persistence layer: ORM models and the SQL repository."""
