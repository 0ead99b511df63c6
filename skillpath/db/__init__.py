"""Persistence layer: SQLAlchemy engine, sessions and ORM models."""
