# src/db/crud.py
from __future__ import annotations

import hashlib
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from db import models
from db.database import connect
from utils.pure import format_ts, money, parse_ts, to_int

_PRODUCT_COLUMNS = (
    "pid, name, category, price, quantity, description, image, "
    "COALESCE(visible, 1) AS visible"
)
_ORDER_COLUMNS = (
    "oid, uid, total, created_at, display_currency, bnpl_months, payment_ref"
)
_ITEM_COLUMNS = "oid, line_no, pid, product_name, price, quantity"


def _row_to_product(row) -> models.Product:
    return models.Product(
        pid=row[0],
        name=row[1],
        category=row[2] or "",
        price=money(row[3]),
        quantity=to_int(row[4]),
        description=row[5] or "",
        image=row[6],
        visible=bool(row[7]),
    )


def _row_to_order(row) -> models.Order:
    return models.Order(
        oid=row[0],
        uid=row[1],
        total=money(row[2]),
        created_at=parse_ts(row[3]),
        display_currency=row[4],
        bnpl_months=row[5],
        payment_ref=row[6],
    )


def _row_to_item(row) -> models.OrderItem:
    return models.OrderItem(
        oid=row[0],
        line_no=row[1],
        pid=row[2],
        product_name=row[3],
        price=money(row[4]),
        quantity=to_int(row[5]),
    )


def _row_to_user(row) -> models.User:
    return models.User(
        uid=int(row[0]),
        username=row[1],
        email=row[2],
        role=row[3],
        address=row[4] or "",
        contact=row[5] or "",
    )


# ---------------------------
# Auth & Registration
# ---------------------------


def hash_password(pwd: str) -> str:
    return hashlib.sha256((pwd or "").encode("utf-8")).hexdigest()


async def email_available(email: str) -> bool:
    """True if no user already registered with the given email."""
    async with connect() as conn:
        cur = await conn.execute(
            "SELECT 1 FROM users WHERE LOWER(email) = LOWER(?) LIMIT 1;", (email,)
        )
        row = await cur.fetchone()
        await cur.close()
        return row is None


async def register_user(
    username: str,
    email: str,
    pwd: str,
    address: str = "",
    contact: str = "",
    role: str = "customer",
) -> int:
    """
    Create a new account and return its uid.
    """
    async with connect() as conn:
        cur = await conn.execute(
            """
            INSERT INTO users(username, email, pwd, address, contact, role)
            VALUES (?, ?, ?, ?, ?, ?);
            """,
            (username, email, hash_password(pwd), address, contact, role),
        )
        uid = cur.lastrowid
        await cur.close()
        await conn.commit()
    return uid


async def login(email: str, pwd: str) -> Optional[models.User]:
    """Return User if email/pwd match; otherwise None."""
    async with connect() as conn:
        cur = await conn.execute(
            """
            SELECT uid, username, email, role, address, contact
            FROM users
            WHERE LOWER(email) = LOWER(?) AND pwd = ?;
            """,
            (email, hash_password(pwd)),
        )
        row = await cur.fetchone()
        await cur.close()
    if not row:
        return None
    return _row_to_user(row)


async def get_user(uid: int) -> Optional[models.User]:
    """Return a User object for the given uid, or None if not found."""
    async with connect() as conn:
        cur = await conn.execute(
            "SELECT uid, username, email, role, address, contact FROM users WHERE uid = ?;",
            (uid,),
        )
        row = await cur.fetchone()
        await cur.close()
    if not row:
        return None
    return _row_to_user(row)


# ---------------------------
# Products (Browse, Search, Stock)
# ---------------------------


async def list_products(include_hidden: bool = False) -> List[models.Product]:
    """All products ordered by pid; hidden ones only when include_hidden."""
    sql = f"SELECT {_PRODUCT_COLUMNS} FROM products"
    if not include_hidden:
        sql += " WHERE COALESCE(visible, 1) = 1"
    sql += " ORDER BY pid;"
    async with connect() as conn:
        cur = await conn.execute(sql)
        rows = await cur.fetchall()
        await cur.close()
    return [_row_to_product(row) for row in rows]


async def search_products(
    term: str = "",
    category: str = "",
    sort: str = "",
    min_price=None,
    max_price=None,
    include_hidden: bool = False,
) -> List[models.Product]:
    """
    Filtered product listing.
    Rules:
    - term matches product name (case-insensitive) or the pid as text.
    - category "" or "all" means any category.
    - min_price / max_price that cannot be parsed are ignored.
    - sort: "price_asc", "price_desc", otherwise by pid.
    - hidden products are excluded unless include_hidden.
    """
    sql = f"SELECT {_PRODUCT_COLUMNS} FROM products WHERE 1 = 1"
    params: List[str] = []

    if not include_hidden:
        sql += " AND COALESCE(visible, 1) = 1"

    phrase = (term or "").strip().lower()
    if phrase:
        like = f"%{phrase}%"
        sql += " AND (LOWER(name) LIKE ? OR CAST(pid AS TEXT) LIKE ?)"
        params.extend([like, like])

    cat = (category or "").strip()
    if cat and cat.lower() != "all":
        sql += " AND category = ?"
        params.append(cat)

    for bound, op in ((min_price, ">="), (max_price, "<=")):
        if bound is None or str(bound).strip() == "":
            continue
        try:
            value = Decimal(str(bound).strip())
        except ArithmeticError:
            continue
        if not value.is_finite():
            continue
        sql += f" AND price {op} ?"
        params.append(str(value))

    if sort == "price_asc":
        sql += " ORDER BY price ASC, pid"
    elif sort == "price_desc":
        sql += " ORDER BY price DESC, pid"
    else:
        sql += " ORDER BY pid"

    async with connect() as conn:
        cur = await conn.execute(sql + ";", tuple(params))
        rows = await cur.fetchall()
        await cur.close()
    return [_row_to_product(row) for row in rows]


async def list_categories(include_hidden: bool = False) -> List[str]:
    sql = "SELECT DISTINCT category FROM products WHERE category != ''"
    if not include_hidden:
        sql += " AND COALESCE(visible, 1) = 1"
    async with connect() as conn:
        cur = await conn.execute(sql + " ORDER BY category;")
        rows = await cur.fetchall()
        await cur.close()
    return [row[0] for row in rows]


async def get_product(pid: int) -> Optional[models.Product]:
    """Fetch a product by pid."""
    async with connect() as conn:
        cur = await conn.execute(
            f"SELECT {_PRODUCT_COLUMNS} FROM products WHERE pid = ?;",
            (pid,),
        )
        row = await cur.fetchone()
        await cur.close()
    if not row:
        return None
    return _row_to_product(row)


async def product_stock(pid: int) -> Optional[int]:
    async with connect() as conn:
        cur = await conn.execute("SELECT quantity FROM products WHERE pid = ?;", (pid,))
        row = await cur.fetchone()
        await cur.close()
        return int(row[0]) if row else None


async def decrease_product_stock(pid: int, qty: int) -> None:
    """
    Decrease stock by qty, clamped at zero. Never fails on insufficient stock.
    Unconditioned update: concurrent checkouts may both decrement.
    """
    async with connect() as conn:
        await conn.execute(
            "UPDATE products SET quantity = MAX(0, quantity - ?) WHERE pid = ?;",
            (qty, pid),
        )
        await conn.commit()


# ---------------------------
# Orders
# ---------------------------


async def add_order(
    uid: int,
    total: Decimal,
    created_at: datetime,
    display_currency: Optional[str] = None,
    bnpl_months: Optional[int] = None,
    payment_ref: Optional[str] = None,
) -> int:
    """Insert an order header and return its oid."""
    async with connect() as conn:
        cur = await conn.execute(
            """
            INSERT INTO orders(uid, total, created_at, display_currency, bnpl_months, payment_ref)
            VALUES (?, ?, ?, ?, ?, ?);
            """,
            (
                uid,
                str(money(total)),
                format_ts(created_at),
                display_currency,
                bnpl_months,
                payment_ref,
            ),
        )
        oid = cur.lastrowid
        await cur.close()
        await conn.commit()
    return oid


async def add_order_items(oid: int, items: Iterable) -> None:
    """
    Insert order lines in one batch. items expose pid, name, price, quantity
    (a cart entry); they are stored as snapshots, not live references.
    """
    rows = [
        (oid, line_no, item.pid, item.name, str(money(item.price)), int(item.quantity))
        for line_no, item in enumerate(items, start=1)
    ]
    if not rows:
        return
    async with connect() as conn:
        await conn.executemany(
            f"INSERT INTO order_items({_ITEM_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?);",
            rows,
        )
        await conn.commit()


async def get_order(
    oid: int,
) -> Tuple[Optional[models.Order], List[models.OrderItem]]:
    """
    Return (order, items) for a specific order, or (None, []).
    """
    async with connect() as conn:
        cur = await conn.execute(
            f"SELECT {_ORDER_COLUMNS} FROM orders WHERE oid = ?;", (oid,)
        )
        order_row = await cur.fetchone()
        await cur.close()
        if not order_row:
            return None, []
        cur = await conn.execute(
            f"SELECT {_ITEM_COLUMNS} FROM order_items WHERE oid = ? ORDER BY line_no;",
            (oid,),
        )
        item_rows = await cur.fetchall()
        await cur.close()
    return _row_to_order(order_row), [_row_to_item(row) for row in item_rows]


async def get_order_by_payment_ref(payment_ref: str) -> Optional[models.Order]:
    async with connect() as conn:
        cur = await conn.execute(
            f"SELECT {_ORDER_COLUMNS} FROM orders WHERE payment_ref = ?;",
            (payment_ref,),
        )
        row = await cur.fetchone()
        await cur.close()
    return _row_to_order(row) if row else None


async def _items_by_order(conn, oids: List[int]) -> Dict[int, List[models.OrderItem]]:
    grouped: Dict[int, List[models.OrderItem]] = {oid: [] for oid in oids}
    if not oids:
        return grouped
    placeholders = ", ".join("?" * len(oids))
    cur = await conn.execute(
        f"""
        SELECT {_ITEM_COLUMNS}
        FROM order_items
        WHERE oid IN ({placeholders})
        ORDER BY oid, line_no;
        """,
        tuple(oids),
    )
    rows = await cur.fetchall()
    await cur.close()
    for row in rows:
        grouped[row[0]].append(_row_to_item(row))
    return grouped


async def list_orders_by_user(
    uid: int,
) -> List[Tuple[models.Order, List[models.OrderItem]]]:
    """A customer's orders with their items, newest first."""
    async with connect() as conn:
        cur = await conn.execute(
            f"""
            SELECT {_ORDER_COLUMNS}
            FROM orders
            WHERE uid = ?
            ORDER BY created_at DESC, oid DESC;
            """,
            (uid,),
        )
        rows = await cur.fetchall()
        await cur.close()
        orders = [_row_to_order(row) for row in rows]
        items = await _items_by_order(conn, [o.oid for o in orders])
    return [(o, items[o.oid]) for o in orders]


async def list_all_orders() -> List[
    Tuple[models.Order, Optional[models.User], List[models.OrderItem]]
]:
    """Every order with its customer (None if deleted) and items, newest first."""
    async with connect() as conn:
        cur = await conn.execute(
            """
            SELECT o.oid, o.uid, o.total, o.created_at, o.display_currency,
                   o.bnpl_months, o.payment_ref,
                   u.uid, u.username, u.email, u.role, u.address, u.contact
            FROM orders o
            LEFT JOIN users u ON u.uid = o.uid
            ORDER BY o.created_at DESC, o.oid DESC;
            """
        )
        rows = await cur.fetchall()
        await cur.close()
        orders = [
            (_row_to_order(row[:7]), _row_to_user(row[7:]) if row[7] else None)
            for row in rows
        ]
        items = await _items_by_order(conn, [o.oid for o, _ in orders])
    return [(o, user, items[o.oid]) for o, user in orders]


async def compute_order_total(oid: int) -> Decimal:
    """Sum of price x quantity over the stored lines of an order."""
    _, items = await get_order(oid)
    return money(sum((item.line_total for item in items), Decimal(0)))


# ---------------------------
# Admin Dashboard
# ---------------------------


async def dashboard_stats(low_stock_threshold: int = 5) -> Dict[str, int]:
    async with connect() as conn:
        cur = await conn.execute(
            """
            SELECT COUNT(*),
                   COALESCE(SUM(CASE WHEN quantity < ? THEN 1 ELSE 0 END), 0)
            FROM products;
            """,
            (low_stock_threshold,),
        )
        prod_row = await cur.fetchone()
        await cur.close()
        cur = await conn.execute(
            """
            SELECT COUNT(*),
                   COALESCE(SUM(CASE WHEN role = 'admin' THEN 1 ELSE 0 END), 0)
            FROM users;
            """
        )
        user_row = await cur.fetchone()
        await cur.close()
    return {
        "total_products": int(prod_row[0]),
        "low_stock_count": int(prod_row[1]),
        "total_users": int(user_row[0]),
        "admin_count": int(user_row[1]),
    }


# ---------------------------
# Wishlist
# ---------------------------


async def add_to_wishlist(
    uid: int, pid: int, notes: Optional[str] = None, when: Optional[datetime] = None
) -> None:
    """Insert, or refresh the notes if the product is already wished for."""
    when = when or datetime.now()
    async with connect() as conn:
        await conn.execute(
            """
            INSERT INTO wishlist(uid, pid, notes, added_at) VALUES (?, ?, ?, ?)
            ON CONFLICT(uid, pid) DO UPDATE SET notes = excluded.notes;
            """,
            (uid, pid, notes or None, format_ts(when)),
        )
        await conn.commit()


async def remove_from_wishlist(uid: int, pid: int) -> None:
    async with connect() as conn:
        await conn.execute("DELETE FROM wishlist WHERE uid = ? AND pid = ?;", (uid, pid))
        await conn.commit()


async def clear_wishlist(uid: int) -> None:
    async with connect() as conn:
        await conn.execute("DELETE FROM wishlist WHERE uid = ?;", (uid,))
        await conn.commit()


async def update_wishlist_notes(uid: int, pid: int, notes: str) -> None:
    async with connect() as conn:
        await conn.execute(
            "UPDATE wishlist SET notes = ? WHERE uid = ? AND pid = ?;",
            (notes, uid, pid),
        )
        await conn.commit()


async def list_wishlist(uid: int) -> List[models.WishlistItem]:
    """Wishlist rows joined with current product fields, newest first."""
    async with connect() as conn:
        cur = await conn.execute(
            """
            SELECT w.uid, w.pid, w.notes, w.added_at,
                   p.name, p.price, p.quantity, p.image, p.category,
                   COALESCE(p.visible, 1)
            FROM wishlist w
            JOIN products p ON p.pid = w.pid
            WHERE w.uid = ?
            ORDER BY w.added_at DESC, w.pid;
            """,
            (uid,),
        )
        rows = await cur.fetchall()
        await cur.close()
    return [
        models.WishlistItem(
            uid=row[0],
            pid=row[1],
            notes=row[2],
            added_at=parse_ts(row[3]),
            name=row[4],
            price=money(row[5]),
            quantity=to_int(row[6]),
            image=row[7],
            category=row[8] or "",
            visible=bool(row[9]),
        )
        for row in rows
    ]


async def wishlist_count(uid: int) -> int:
    async with connect() as conn:
        cur = await conn.execute("SELECT COUNT(*) FROM wishlist WHERE uid = ?;", (uid,))
        row = await cur.fetchone()
        await cur.close()
    return int(row[0])


async def is_in_wishlist(uid: int, pid: int) -> bool:
    async with connect() as conn:
        cur = await conn.execute(
            "SELECT 1 FROM wishlist WHERE uid = ? AND pid = ? LIMIT 1;", (uid, pid)
        )
        row = await cur.fetchone()
        await cur.close()
    return row is not None
