import json

from app.models.database import connect, transaction
from app.models.orders import insert_order, OrderValidationError


def _session_row(row) -> dict:
    session = dict(row)
    session["context"] = json.loads(session["context"] or "{}")
    return session


# --- Session CRUD ---

async def get_or_create_session(db_path: str, phone: str) -> dict:
    """Fetch the chat session for a sender, creating an idle one on first contact."""
    async with connect(db_path) as db:
        await db.execute(
            "INSERT OR IGNORE INTO chat_sessions (phone) VALUES (?)",
            (phone,),
        )
        await db.commit()
        cursor = await db.execute("SELECT * FROM chat_sessions WHERE phone = ?", (phone,))
        row = await cursor.fetchone()
        return _session_row(row)


async def get_session(db_path: str, phone: str) -> dict | None:
    """Fetch a session by phone number. Returns None if not found."""
    async with connect(db_path) as db:
        cursor = await db.execute("SELECT * FROM chat_sessions WHERE phone = ?", (phone,))
        row = await cursor.fetchone()
        if row is None:
            return None
        return _session_row(row)


async def list_sessions(db_path: str, limit: int = 20, offset: int = 0) -> list[dict]:
    """List sessions, most recently active first, with their cart size."""
    async with connect(db_path) as db:
        cursor = await db.execute(
            """
            SELECT s.*, COALESCE(SUM(i.quantity), 0) AS item_count
            FROM chat_sessions s
            LEFT JOIN chat_session_items i ON i.session_id = s.id
            GROUP BY s.id
            ORDER BY s.updated_at DESC, s.id DESC
            LIMIT ? OFFSET ?
            """,
            (limit, offset),
        )
        rows = await cursor.fetchall()
        return [_session_row(row) for row in rows]


async def save_state(db_path: str, session_id: int, state: str, context: dict | None = None):
    async with connect(db_path) as db:
        await db.execute(
            "UPDATE chat_sessions SET state = ?, context = ?, updated_at = datetime('now') WHERE id = ?",
            (state, json.dumps(context or {}), session_id),
        )
        await db.commit()


async def reset_session(db_path: str, phone: str) -> bool:
    """Drop a sender's cart and state. Returns False if there is no such session."""
    async with connect(db_path) as db:
        cursor = await db.execute("DELETE FROM chat_sessions WHERE phone = ?", (phone,))
        await db.commit()
        return cursor.rowcount > 0


# --- Cart items ---

async def add_item(db_path: str, session_id: int, product_id: int, quantity: int = 1):
    """Add to the cart, merging with an existing line for the same product."""
    async with connect(db_path) as db:
        await db.execute(
            """
            INSERT INTO chat_session_items (session_id, product_id, quantity)
            VALUES (?, ?, ?)
            ON CONFLICT (session_id, product_id)
            DO UPDATE SET quantity = quantity + excluded.quantity
            """,
            (session_id, product_id, quantity),
        )
        await db.commit()


async def get_items(db_path: str, session_id: int) -> list[dict]:
    """Cart lines with current catalog prices, in the order they were added."""
    async with connect(db_path) as db:
        cursor = await db.execute(
            """
            SELECT i.id, i.product_id, p.name AS product_name, i.quantity, p.price AS unit_price,
                   round(i.quantity * p.price, 2) AS line_total
            FROM chat_session_items i
            JOIN products p ON p.id = i.product_id
            WHERE i.session_id = ?
            ORDER BY i.id
            """,
            (session_id,),
        )
        rows = await cursor.fetchall()
        return [dict(row) for row in rows]


async def remove_item(db_path: str, session_id: int, item_id: int) -> bool:
    async with connect(db_path) as db:
        cursor = await db.execute(
            "DELETE FROM chat_session_items WHERE id = ? AND session_id = ?",
            (item_id, session_id),
        )
        await db.commit()
        return cursor.rowcount > 0


async def clear_items(db_path: str, session_id: int):
    async with connect(db_path) as db:
        await db.execute("DELETE FROM chat_session_items WHERE session_id = ?", (session_id,))
        await db.commit()


async def checkout(db_path: str, session_id: int, phone: str, customer_name: str | None = None) -> int:
    """Turn the cart into an order and empty it, all in one transaction.

    Returns the new order id. Raises OrderValidationError if the cart is
    empty or holds a product that is no longer available.
    """
    async with transaction(db_path) as db:
        cursor = await db.execute(
            "SELECT product_id, quantity FROM chat_session_items WHERE session_id = ? ORDER BY id",
            (session_id,),
        )
        rows = await cursor.fetchall()
        if not rows:
            raise OrderValidationError("Cart is empty")
        order_id = await insert_order(
            db,
            customer_phone=phone,
            items=[(row["product_id"], row["quantity"]) for row in rows],
            customer_name=customer_name,
        )
        await db.execute("DELETE FROM chat_session_items WHERE session_id = ?", (session_id,))
    return order_id


# --- Webhook de-duplication ---

async def mark_processed(db_path: str, message_id: str, sender: str) -> bool:
    """Record a provider message id. Returns False if it was seen before."""
    async with connect(db_path) as db:
        cursor = await db.execute(
            "INSERT OR IGNORE INTO processed_messages (message_id, sender) VALUES (?, ?)",
            (message_id, sender),
        )
        await db.commit()
        return cursor.rowcount > 0
