"""Persistence layer: SQLAlchemy async models and repositories."""
