import json
import aiosqlite

from app.models.database import connect


CATEGORY_FIELDS = ("name", "description", "is_active")
PRODUCT_FIELDS = ("name", "description", "price", "category_id", "ingredients", "is_available")
NULLABLE_FIELDS = ("description",)


def _category_row(row: aiosqlite.Row) -> dict:
    category = dict(row)
    category["is_active"] = bool(category["is_active"])
    return category


def _product_row(row: aiosqlite.Row) -> dict:
    product = dict(row)
    product["ingredients"] = json.loads(product["ingredients"] or "[]")
    product["is_available"] = bool(product["is_available"])
    return product


def _settable(fields: dict, allowed: tuple) -> dict:
    """Keep known columns; None clears a nullable column and is dropped for the rest."""
    return {k: v for k, v in fields.items() if k in allowed and (v is not None or k in NULLABLE_FIELDS)}


def _like_pattern(text: str) -> str:
    """Substring pattern for `LIKE ? ESCAPE '\\'` with wildcards in the text taken literally."""
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _assignments(fields: dict) -> tuple[str, list]:
    """Build the SET clause for a partial update. Keys are trusted column names."""
    columns = ", ".join(f"{key} = ?" for key in fields)
    return columns, list(fields.values())


# --- Category CRUD ---

async def create_category(
    db_path: str,
    name: str,
    description: str | None = None,
    is_active: bool = True,
) -> dict:
    """Insert a category. Raises aiosqlite.IntegrityError on a duplicate name."""
    async with connect(db_path) as db:
        cursor = await db.execute(
            "INSERT INTO categories (name, description, is_active) VALUES (?, ?, ?)",
            (name, description, int(is_active)),
        )
        await db.commit()
        category_id = cursor.lastrowid
    return await get_category(db_path, category_id)


async def get_category(db_path: str, category_id: int) -> dict | None:
    async with connect(db_path) as db:
        cursor = await db.execute("SELECT * FROM categories WHERE id = ?", (category_id,))
        row = await cursor.fetchone()
        return _category_row(row) if row else None


async def list_categories(db_path: str, include_inactive: bool = False) -> list[dict]:
    """List categories ordered by name. Soft-deleted ones are hidden unless asked for."""
    query = "SELECT * FROM categories"
    if not include_inactive:
        query += " WHERE is_active = 1"
    query += " ORDER BY name COLLATE NOCASE"
    async with connect(db_path) as db:
        cursor = await db.execute(query)
        rows = await cursor.fetchall()
        return [_category_row(row) for row in rows]


async def update_category(db_path: str, category_id: int, **fields) -> dict | None:
    fields = _settable(fields, CATEGORY_FIELDS)
    if "is_active" in fields:
        fields["is_active"] = int(fields["is_active"])
    if fields:
        columns, values = _assignments(fields)
        async with connect(db_path) as db:
            await db.execute(
                f"UPDATE categories SET {columns} WHERE id = ?",
                (*values, category_id),
            )
            await db.commit()
    return await get_category(db_path, category_id)


async def deactivate_category(db_path: str, category_id: int) -> bool:
    """Soft-delete a category. Returns False if it does not exist."""
    async with connect(db_path) as db:
        cursor = await db.execute(
            "UPDATE categories SET is_active = 0 WHERE id = ?",
            (category_id,),
        )
        await db.commit()
        return cursor.rowcount > 0


# --- Product CRUD ---

async def create_product(
    db_path: str,
    name: str,
    price: float,
    category_id: int,
    description: str | None = None,
    ingredients: list[str] | None = None,
    is_available: bool = True,
) -> dict:
    """Insert a product. Raises aiosqlite.IntegrityError if the category does not exist."""
    async with connect(db_path) as db:
        cursor = await db.execute(
            """
            INSERT INTO products (name, description, price, category_id, ingredients, is_available)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (name, description, price, category_id, json.dumps(ingredients or []), int(is_available)),
        )
        await db.commit()
        product_id = cursor.lastrowid
    return await get_product(db_path, product_id)


async def get_product(db_path: str, product_id: int) -> dict | None:
    async with connect(db_path) as db:
        cursor = await db.execute("SELECT * FROM products WHERE id = ?", (product_id,))
        row = await cursor.fetchone()
        return _product_row(row) if row else None


async def list_products(
    db_path: str,
    category_id: int | None = None,
    search: str | None = None,
    available_only: bool = False,
    limit: int = 50,
    offset: int = 0,
) -> list[dict]:
    """List products, optionally filtered by category and a name/description search."""
    clauses, params = [], []
    if category_id is not None:
        clauses.append("category_id = ?")
        params.append(category_id)
    if search:
        clauses.append("(name LIKE ? ESCAPE '\\' OR description LIKE ? ESCAPE '\\')")
        pattern = _like_pattern(search)
        params.extend([pattern, pattern])
    if available_only:
        clauses.append("is_available = 1")

    query = "SELECT * FROM products"
    if clauses:
        query += " WHERE " + " AND ".join(clauses)
    query += " ORDER BY id LIMIT ? OFFSET ?"
    params.extend([limit, offset])

    async with connect(db_path) as db:
        cursor = await db.execute(query, params)
        rows = await cursor.fetchall()
        return [_product_row(row) for row in rows]


async def find_product_by_name(db_path: str, name: str) -> dict | None:
    """Case-insensitive lookup: exact name first, then the first partial match."""
    async with connect(db_path) as db:
        cursor = await db.execute(
            """
            SELECT * FROM products
            WHERE is_available = 1 AND name LIKE ? ESCAPE '\\'
            ORDER BY (lower(name) = lower(?)) DESC, length(name), id
            LIMIT 1
            """,
            (_like_pattern(name), name),
        )
        row = await cursor.fetchone()
        return _product_row(row) if row else None


async def update_product(db_path: str, product_id: int, **fields) -> dict | None:
    """Partial update. Raises aiosqlite.IntegrityError if category_id points nowhere."""
    fields = _settable(fields, PRODUCT_FIELDS)
    if "ingredients" in fields:
        fields["ingredients"] = json.dumps(fields["ingredients"])
    if "is_available" in fields:
        fields["is_available"] = int(fields["is_available"])
    if fields:
        columns, values = _assignments(fields)
        async with connect(db_path) as db:
            await db.execute(
                f"UPDATE products SET {columns} WHERE id = ?",
                (*values, product_id),
            )
            await db.commit()
    return await get_product(db_path, product_id)


async def delete_product(db_path: str, product_id: int) -> bool:
    """Delete a product. Raises aiosqlite.IntegrityError if an order still references it."""
    async with connect(db_path) as db:
        cursor = await db.execute("DELETE FROM products WHERE id = ?", (product_id,))
        await db.commit()
        return cursor.rowcount > 0
