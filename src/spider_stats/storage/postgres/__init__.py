"""PostgreSQL counter store (SQLAlchemy async + asyncpg)."""
