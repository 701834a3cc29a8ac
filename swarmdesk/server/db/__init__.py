"""Database engine and ORM tables."""
