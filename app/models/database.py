from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator
import aiosqlite


SCHEMA = """
    CREATE TABLE IF NOT EXISTS categories (
        id          INTEGER PRIMARY KEY AUTOINCREMENT,
        name        TEXT NOT NULL UNIQUE,
        description TEXT,
        is_active   INTEGER NOT NULL DEFAULT 1,
        created_at  TEXT NOT NULL DEFAULT (datetime('now')),
        updated_at  TEXT NOT NULL DEFAULT (datetime('now'))
    );

    CREATE TABLE IF NOT EXISTS products (
        id           INTEGER PRIMARY KEY AUTOINCREMENT,
        name         TEXT NOT NULL,
        description  TEXT,
        price        REAL NOT NULL CHECK (price >= 0),
        category_id  INTEGER NOT NULL REFERENCES categories(id),
        ingredients  TEXT NOT NULL DEFAULT '[]',
        is_available INTEGER NOT NULL DEFAULT 1,
        created_at   TEXT NOT NULL DEFAULT (datetime('now')),
        updated_at   TEXT NOT NULL DEFAULT (datetime('now'))
    );

    CREATE INDEX IF NOT EXISTS idx_products_category
        ON products(category_id);

    CREATE TABLE IF NOT EXISTS orders (
        id             INTEGER PRIMARY KEY AUTOINCREMENT,
        customer_phone TEXT NOT NULL,
        customer_name  TEXT,
        status         TEXT NOT NULL DEFAULT 'pending',
        notes          TEXT,
        created_at     TEXT NOT NULL DEFAULT (datetime('now')),
        updated_at     TEXT NOT NULL DEFAULT (datetime('now'))
    );

    CREATE INDEX IF NOT EXISTS idx_orders_customer
        ON orders(customer_phone, created_at);

    CREATE TABLE IF NOT EXISTS order_items (
        id          INTEGER PRIMARY KEY AUTOINCREMENT,
        order_id    INTEGER NOT NULL REFERENCES orders(id) ON DELETE CASCADE,
        product_id  INTEGER NOT NULL REFERENCES products(id) ON DELETE RESTRICT,
        quantity    INTEGER NOT NULL CHECK (quantity > 0),
        unit_price  REAL NOT NULL CHECK (unit_price >= 0)
    );

    CREATE INDEX IF NOT EXISTS idx_order_items_order
        ON order_items(order_id);

    CREATE TABLE IF NOT EXISTS chat_sessions (
        id          INTEGER PRIMARY KEY AUTOINCREMENT,
        phone       TEXT NOT NULL UNIQUE,
        state       TEXT NOT NULL DEFAULT 'idle',
        context     TEXT NOT NULL DEFAULT '{}',
        created_at  TEXT NOT NULL DEFAULT (datetime('now')),
        updated_at  TEXT NOT NULL DEFAULT (datetime('now'))
    );

    CREATE TABLE IF NOT EXISTS chat_session_items (
        id          INTEGER PRIMARY KEY AUTOINCREMENT,
        session_id  INTEGER NOT NULL REFERENCES chat_sessions(id) ON DELETE CASCADE,
        product_id  INTEGER NOT NULL REFERENCES products(id) ON DELETE CASCADE,
        quantity    INTEGER NOT NULL CHECK (quantity > 0),
        created_at  TEXT NOT NULL DEFAULT (datetime('now')),
        UNIQUE (session_id, product_id)
    );

    CREATE INDEX IF NOT EXISTS idx_chat_session_items_session
        ON chat_session_items(session_id);

    CREATE TABLE IF NOT EXISTS processed_messages (
        message_id  TEXT PRIMARY KEY,
        sender      TEXT NOT NULL,
        created_at  TEXT NOT NULL DEFAULT (datetime('now'))
    );
"""

# Bump updated_at on any UPDATE that did not set it.
TRIGGERS = """
    CREATE TRIGGER IF NOT EXISTS trg_{table}_updated_at
    AFTER UPDATE ON {table}
    FOR EACH ROW WHEN NEW.updated_at = OLD.updated_at
    BEGIN
        UPDATE {table} SET updated_at = datetime('now') WHERE id = NEW.id;
    END;
"""

TIMESTAMPED_TABLES = ("categories", "products", "orders", "chat_sessions")


async def init_db(db_path: str):
    """Create tables, indexes and triggers if they don't exist. Called once on app startup."""
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    async with aiosqlite.connect(db_path) as db:
        await db.executescript(SCHEMA)
        for table in TIMESTAMPED_TABLES:
            await db.executescript(TRIGGERS.format(table=table))
        await db.commit()


@asynccontextmanager
async def connect(db_path: str) -> AsyncIterator[aiosqlite.Connection]:
    """Open a connection with dict-like rows and foreign keys enforced."""
    async with aiosqlite.connect(db_path) as db:
        db.row_factory = aiosqlite.Row
        await db.execute("PRAGMA foreign_keys = ON")
        yield db


@asynccontextmanager
async def transaction(db_path: str) -> AsyncIterator[aiosqlite.Connection]:
    """Run a block under BEGIN IMMEDIATE; commit on success, roll back on any error.

    IMMEDIATE takes the write lock up front; concurrent writers wait on it.
    """
    async with connect(db_path) as db:
        await db.execute("BEGIN IMMEDIATE")
        try:
            yield db
        except BaseException:
            await db.rollback()
            raise
        else:
            await db.commit()


async def check_db(db_path: str) -> bool:
    """Cheap connectivity probe used by the health endpoint."""
    try:
        async with connect(db_path) as db:
            cursor = await db.execute("SELECT 1")
            await cursor.fetchone()
        return True
    except aiosqlite.Error:
        return False
