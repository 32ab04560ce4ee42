import logging
import aiosqlite

from app.models.database import connect, transaction

logger = logging.getLogger(__name__)

ORDER_STATUSES = ("pending", "confirmed", "preparing", "ready", "delivered", "cancelled")
TERMINAL_STATUSES = ("delivered", "cancelled")


class OrderValidationError(Exception):
    """An order references a missing or unavailable product, or a bad quantity."""


class OrderStatusError(Exception):
    """A status change was attempted on an order that is already closed."""


async def insert_order(
    db: aiosqlite.Connection,
    customer_phone: str,
    items: list[tuple[int, int]],
    customer_name: str | None = None,
    notes: str | None = None,
) -> int:
    """Insert an order and its lines on an open transaction. Returns the order id.

    ``items`` is a list of ``(product_id, quantity)``. Unit prices are read
    inside the same transaction so the line records what the customer was
    charged even if the catalog changes later.
    """
    if not items:
        raise OrderValidationError("An order needs at least one item")

    lines = []
    for product_id, quantity in items:
        if quantity <= 0:
            raise OrderValidationError(f"Quantity for product {product_id} must be positive")
        cursor = await db.execute(
            "SELECT price, is_available FROM products WHERE id = ?",
            (product_id,),
        )
        product = await cursor.fetchone()
        if product is None:
            raise OrderValidationError(f"Product {product_id} does not exist")
        if not product["is_available"]:
            raise OrderValidationError(f"Product {product_id} is not available")
        lines.append((product_id, quantity, product["price"]))

    cursor = await db.execute(
        "INSERT INTO orders (customer_phone, customer_name, notes) VALUES (?, ?, ?)",
        (customer_phone, customer_name, notes),
    )
    order_id = cursor.lastrowid
    await db.executemany(
        "INSERT INTO order_items (order_id, product_id, quantity, unit_price) VALUES (?, ?, ?, ?)",
        [(order_id, product_id, quantity, price) for product_id, quantity, price in lines],
    )
    return order_id


async def create_order(
    db_path: str,
    customer_phone: str,
    items: list[tuple[int, int]],
    customer_name: str | None = None,
    notes: str | None = None,
) -> dict:
    """Place an order atomically and return it with items and total."""
    async with transaction(db_path) as db:
        order_id = await insert_order(db, customer_phone, items, customer_name, notes)
    logger.info("Created order %s for %s (%d lines)", order_id, customer_phone, len(items))
    return await get_order(db_path, order_id)


async def add_order_item(
    db_path: str,
    order_id: int,
    product_id: int,
    quantity: int,
    unit_price: float,
) -> int:
    """Insert a single line. Raises aiosqlite.IntegrityError if the order or product is missing."""
    async with connect(db_path) as db:
        cursor = await db.execute(
            "INSERT INTO order_items (order_id, product_id, quantity, unit_price) VALUES (?, ?, ?, ?)",
            (order_id, product_id, quantity, unit_price),
        )
        await db.commit()
        return cursor.lastrowid


async def get_order_items(db_path: str, order_id: int) -> list[dict]:
    async with connect(db_path) as db:
        cursor = await db.execute(
            """
            SELECT oi.id, oi.product_id, p.name AS product_name, oi.quantity, oi.unit_price,
                   round(oi.quantity * oi.unit_price, 2) AS line_total
            FROM order_items oi
            JOIN products p ON p.id = oi.product_id
            WHERE oi.order_id = ?
            ORDER BY oi.id
            """,
            (order_id,),
        )
        rows = await cursor.fetchall()
        return [dict(row) for row in rows]


# Totals are always derived from the lines, never stored on the order.
ORDER_SELECT = """
    SELECT o.*, round(COALESCE(SUM(oi.quantity * oi.unit_price), 0), 2) AS total
    FROM orders o
    LEFT JOIN order_items oi ON oi.order_id = o.id
"""


async def get_order(db_path: str, order_id: int) -> dict | None:
    """Fetch an order with its items and derived total. Returns None if not found."""
    async with connect(db_path) as db:
        cursor = await db.execute(
            ORDER_SELECT + " WHERE o.id = ? GROUP BY o.id",
            (order_id,),
        )
        row = await cursor.fetchone()
    if row is None:
        return None
    order = dict(row)
    order["items"] = await get_order_items(db_path, order_id)
    return order


async def list_orders(
    db_path: str,
    status: str | None = None,
    customer_phone: str | None = None,
    limit: int = 20,
    offset: int = 0,
) -> list[dict]:
    """List orders, most recent first. Items are not included."""
    clauses, params = [], []
    if status:
        clauses.append("o.status = ?")
        params.append(status)
    if customer_phone:
        clauses.append("o.customer_phone = ?")
        params.append(customer_phone)

    query = ORDER_SELECT
    if clauses:
        query += " WHERE " + " AND ".join(clauses)
    query += " GROUP BY o.id ORDER BY o.created_at DESC, o.id DESC LIMIT ? OFFSET ?"
    params.extend([limit, offset])

    async with connect(db_path) as db:
        cursor = await db.execute(query, params)
        rows = await cursor.fetchall()
        return [dict(row) for row in rows]


async def get_latest_order(db_path: str, customer_phone: str) -> dict | None:
    orders = await list_orders(db_path, customer_phone=customer_phone, limit=1)
    return orders[0] if orders else None


async def update_order_status(db_path: str, order_id: int, status: str) -> dict | None:
    """Move an order to a new status. Returns None if the order does not exist."""
    if status not in ORDER_STATUSES:
        raise OrderValidationError(f"Unknown status: {status}")
    async with transaction(db_path) as db:
        cursor = await db.execute("SELECT status FROM orders WHERE id = ?", (order_id,))
        row = await cursor.fetchone()
        if row is None:
            return None
        if row["status"] in TERMINAL_STATUSES and row["status"] != status:
            raise OrderStatusError(f"Order {order_id} is already {row['status']}")
        await db.execute("UPDATE orders SET status = ? WHERE id = ?", (status, order_id))
    logger.info("Order %s moved to %s", order_id, status)
    return await get_order(db_path, order_id)
