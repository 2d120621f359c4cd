"""WorkspaceStore: reads and scoped writes over the user's synced data.

Covers inbox threads/messages, contacts, tasks, calendar events, Shopify
orders/customers, reply drafts and scheduling-rule overrides.
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING, Any

from aiva.db import connect, dumps, loads, row_to_dict
from aiva.timeutil import utc_now_iso

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS contacts (
        id         TEXT PRIMARY KEY,
        user_id    TEXT NOT NULL,
        full_name  TEXT NOT NULL DEFAULT '',
        email      TEXT NOT NULL DEFAULT '',
        company    TEXT NOT NULL DEFAULT '',
        notes      TEXT NOT NULL DEFAULT '',
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS threads (
        id               TEXT PRIMARY KEY,
        user_id          TEXT NOT NULL,
        contact_id       TEXT,
        provider         TEXT NOT NULL DEFAULT 'gmail',
        primary_subject  TEXT NOT NULL DEFAULT '',
        snippet          TEXT NOT NULL DEFAULT '',
        priority         TEXT NOT NULL DEFAULT 'medium',
        is_unread        INTEGER NOT NULL DEFAULT 1,
        is_archived      INTEGER NOT NULL DEFAULT 0,
        has_draft        INTEGER NOT NULL DEFAULT 0,
        message_count    INTEGER NOT NULL DEFAULT 0,
        confidence_score REAL,
        last_message_at  TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS messages (
        id           TEXT PRIMARY KEY,
        thread_id    TEXT NOT NULL,
        sender_name  TEXT NOT NULL DEFAULT '',
        sender_email TEXT NOT NULL DEFAULT '',
        subject      TEXT NOT NULL DEFAULT '',
        body         TEXT NOT NULL DEFAULT '',
        snippet      TEXT NOT NULL DEFAULT '',
        timestamp    TEXT NOT NULL,
        priority     TEXT NOT NULL DEFAULT 'medium',
        is_read      INTEGER NOT NULL DEFAULT 0
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS tasks (
        id               TEXT PRIMARY KEY,
        user_id          TEXT NOT NULL,
        title            TEXT NOT NULL,
        description      TEXT,
        status           TEXT NOT NULL DEFAULT 'pending',
        priority         TEXT NOT NULL DEFAULT 'medium',
        due_date         TEXT,
        source_thread_id TEXT,
        created_at       TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS calendar_events (
        id               TEXT PRIMARY KEY,
        user_id          TEXT NOT NULL,
        title            TEXT NOT NULL,
        start_time       TEXT NOT NULL,
        end_time         TEXT NOT NULL,
        location         TEXT,
        description      TEXT,
        conference_url   TEXT,
        attendees        TEXT NOT NULL DEFAULT '[]',
        color            TEXT,
        task_id          TEXT,
        created_by       TEXT NOT NULL DEFAULT 'user',
        source_thread_id TEXT,
        created_at       TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS shopify_orders (
        id                 TEXT PRIMARY KEY,
        user_id            TEXT NOT NULL,
        shopify_order_id   TEXT UNIQUE,
        order_name         TEXT NOT NULL DEFAULT '',
        customer_name      TEXT NOT NULL DEFAULT '',
        customer_email     TEXT NOT NULL DEFAULT '',
        financial_status   TEXT NOT NULL DEFAULT 'pending',
        fulfillment_status TEXT NOT NULL DEFAULT 'unfulfilled',
        total_price        TEXT NOT NULL DEFAULT '0.00',
        currency           TEXT NOT NULL DEFAULT 'USD',
        tracking_number    TEXT,
        tracking_url       TEXT,
        line_items         TEXT NOT NULL DEFAULT '[]',
        created_at         TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS shopify_customers (
        shopify_id   TEXT PRIMARY KEY,
        user_id      TEXT NOT NULL,
        email        TEXT NOT NULL DEFAULT '',
        orders_count INTEGER NOT NULL DEFAULT 0,
        total_spent  TEXT NOT NULL DEFAULT '0.00',
        tags         TEXT NOT NULL DEFAULT '[]',
        updated_at   TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS message_drafts (
        id               TEXT PRIMARY KEY,
        thread_id        TEXT NOT NULL,
        content          TEXT NOT NULL,
        status           TEXT NOT NULL DEFAULT 'pending',
        confidence_score REAL NOT NULL DEFAULT 0,
        created_by       TEXT NOT NULL,
        created_at       TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS scheduling_rules (
        scope      TEXT NOT NULL,
        scope_id   TEXT NOT NULL,
        rules      TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        PRIMARY KEY (scope, scope_id)
    )
    """,
)

_THREAD_COLUMNS = (
    "id", "provider", "primary_subject", "snippet", "priority", "is_unread",
    "has_draft", "message_count", "confidence_score", "last_message_at",
    "contact_name", "contact_email",
)
_THREAD_SELECT = """
    SELECT t.id, t.provider, t.primary_subject, t.snippet, t.priority, t.is_unread,
           t.has_draft, t.message_count, t.confidence_score, t.last_message_at,
           c.full_name, c.email
    FROM threads t
    LEFT JOIN contacts c ON c.id = t.contact_id
"""

_MESSAGE_COLUMNS = (
    "id", "thread_id", "sender_name", "sender_email", "subject", "body",
    "snippet", "timestamp", "priority", "is_read",
)
_TASK_COLUMNS = (
    "id", "user_id", "title", "description", "status", "priority", "due_date",
    "source_thread_id", "created_at",
)
_EVENT_COLUMNS = (
    "id", "user_id", "title", "start_time", "end_time", "location", "description",
    "conference_url", "attendees", "color", "task_id", "created_by",
    "source_thread_id", "created_at",
)
_ORDER_COLUMNS = (
    "id", "order_name", "customer_name", "customer_email", "financial_status",
    "fulfillment_status", "total_price", "currency", "tracking_number",
    "tracking_url", "created_at",
)
_CONTACT_COLUMNS = ("id", "full_name", "email", "company", "notes", "created_at")


class ThreadNotFoundError(LookupError):
    """The thread does not exist or belongs to another user."""


def _new_id() -> str:
    return uuid.uuid4().hex


def _thread_from_row(row: tuple) -> dict[str, Any]:
    data = row_to_dict(_THREAD_COLUMNS, row)
    data["is_unread"] = bool(data["is_unread"])
    data["has_draft"] = bool(data["has_draft"])
    return data


def _event_from_row(row: tuple) -> dict[str, Any]:
    data = row_to_dict(_EVENT_COLUMNS, row)
    data["attendees"] = loads(data["attendees"], default=[])
    return data


class WorkspaceStore:
    """Persists the user's synced workspace data in SQLite / Turso.

    Singleton accessed via ``WorkspaceStore.get()``.  Pass an explicit
    *db_path* for test isolation (e.g. ``tmp_path / "test.db"``).
    """

    _instance: WorkspaceStore | None = None

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path
        self._initialised = False

    @classmethod
    def get(cls) -> WorkspaceStore:
        """Return the shared WorkspaceStore instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset the singleton (for testing)."""
        cls._instance = None

    # -- Internal helpers ------------------------------------------------------

    async def _connect(self):  # noqa: ANN202
        db = await connect(self._db_path)
        if not self._initialised:
            await db.apply_schema(_SCHEMA)
            self._initialised = True
        return db

    # -- Contacts --------------------------------------------------------------

    async def add_contact(
        self, user_id: str, full_name: str, email: str, company: str = "", notes: str = ""
    ) -> dict[str, Any]:
        contact = {
            "id": _new_id(),
            "full_name": full_name,
            "email": email,
            "company": company,
            "notes": notes,
            "created_at": utc_now_iso(),
        }
        db = await self._connect()
        try:
            await db.execute(
                """
                INSERT INTO contacts (id, user_id, full_name, email, company, notes, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (contact["id"], user_id, full_name, email, company, notes, contact["created_at"]),
            )
            await db.commit()
            return contact
        finally:
            await db.close()

    async def find_contacts(
        self,
        user_id: str,
        *,
        email: str | None = None,
        name: str | None = None,
        limit: int = 5,
    ) -> list[dict[str, Any]]:
        """Exact email match, else case-insensitive partial name match."""
        sql = f"SELECT {', '.join(_CONTACT_COLUMNS)} FROM contacts WHERE user_id = ?"
        params: list[Any] = [user_id]
        if email:
            sql += " AND email = ?"
            params.append(email)
        elif name:
            sql += " AND full_name LIKE ?"
            params.append(f"%{name}%")
        sql += " ORDER BY full_name LIMIT ?"
        params.append(limit)

        db = await self._connect()
        try:
            cursor = await db.execute(sql, tuple(params))
            rows = await cursor.fetchall()
            return [row_to_dict(_CONTACT_COLUMNS, row) for row in rows]
        finally:
            await db.close()

    # -- Threads & messages ----------------------------------------------------

    async def add_thread(
        self,
        user_id: str,
        *,
        subject: str,
        last_message_at: str,
        contact_id: str | None = None,
        provider: str = "gmail",
        snippet: str = "",
        priority: str = "medium",
        is_unread: bool = True,
        is_archived: bool = False,
        has_draft: bool = False,
        message_count: int = 0,
        thread_id: str | None = None,
    ) -> str:
        """Insert a thread row. Returns its id."""
        thread_id = thread_id or _new_id()
        db = await self._connect()
        try:
            await db.execute(
                """
                INSERT INTO threads
                    (id, user_id, contact_id, provider, primary_subject, snippet, priority,
                     is_unread, is_archived, has_draft, message_count, last_message_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    thread_id, user_id, contact_id, provider, subject, snippet, priority,
                    int(is_unread), int(is_archived), int(has_draft), message_count,
                    last_message_at,
                ),
            )
            await db.commit()
            return thread_id
        finally:
            await db.close()

    async def add_message(
        self,
        thread_id: str,
        *,
        sender_email: str,
        timestamp: str,
        sender_name: str = "",
        subject: str = "",
        body: str = "",
        snippet: str = "",
        priority: str = "medium",
        is_read: bool = False,
    ) -> str:
        message_id = _new_id()
        db = await self._connect()
        try:
            await db.execute(
                """
                INSERT INTO messages
                    (id, thread_id, sender_name, sender_email, subject, body, snippet,
                     timestamp, priority, is_read)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    message_id, thread_id, sender_name, sender_email, subject, body,
                    snippet or body[:200], timestamp, priority, int(is_read),
                ),
            )
            await db.commit()
            return message_id
        finally:
            await db.close()

    async def search_threads(
        self,
        user_id: str,
        *,
        provider: str | None = None,
        date_from: str | None = None,
        date_before: str | None = None,
        is_unread: bool | None = None,
        priority: str | None = None,
        limit: int = 25,
    ) -> list[dict[str, Any]]:
        """Non-archived threads, most recent first, filtered in SQL."""
        sql = _THREAD_SELECT + " WHERE t.user_id = ? AND t.is_archived = 0"
        params: list[Any] = [user_id]
        if provider:
            sql += " AND t.provider = ?"
            params.append(provider)
        if date_from:
            sql += " AND t.last_message_at >= ?"
            params.append(date_from)
        if date_before:
            sql += " AND t.last_message_at < ?"
            params.append(date_before)
        if is_unread is not None:
            sql += " AND t.is_unread = ?"
            params.append(int(is_unread))
        if priority:
            sql += " AND t.priority = ?"
            params.append(priority)
        sql += " ORDER BY t.last_message_at DESC LIMIT ?"
        params.append(limit)

        db = await self._connect()
        try:
            cursor = await db.execute(sql, tuple(params))
            rows = await cursor.fetchall()
            return [_thread_from_row(row) for row in rows]
        finally:
            await db.close()

    async def get_thread(self, user_id: str, thread_id: str) -> dict[str, Any] | None:
        db = await self._connect()
        try:
            cursor = await db.execute(
                _THREAD_SELECT + " WHERE t.user_id = ? AND t.id = ?",
                (user_id, thread_id),
            )
            row = await cursor.fetchone()
            return _thread_from_row(row) if row else None
        finally:
            await db.close()

    async def get_thread_messages(
        self,
        user_id: str,
        thread_id: str,
        *,
        newest_first: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Messages of a thread the user owns, in timestamp order."""
        columns = ", ".join(f"m.{c}" for c in _MESSAGE_COLUMNS)
        sql = (
            f"SELECT {columns} FROM messages m JOIN threads t ON t.id = m.thread_id "
            "WHERE t.user_id = ? AND m.thread_id = ? "
            f"ORDER BY m.timestamp {'DESC' if newest_first else 'ASC'}"
        )
        params: list[Any] = [user_id, thread_id]
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)

        db = await self._connect()
        try:
            cursor = await db.execute(sql, tuple(params))
            rows = await cursor.fetchall()
            messages = [row_to_dict(_MESSAGE_COLUMNS, row) for row in rows]
            for m in messages:
                m["is_read"] = bool(m["is_read"])
            return messages
        finally:
            await db.close()

    async def add_draft(
        self,
        user_id: str,
        thread_id: str,
        content: str,
        *,
        confidence_score: float,
        created_by: str,
    ) -> str:
        """Insert a pending reply draft and flag the thread as having one.

        Raises ``ThreadNotFoundError`` unless *user_id* owns the thread.
        """
        draft_id = _new_id()
        db = await self._connect()
        try:
            cursor = await db.execute(
                """
                INSERT INTO message_drafts
                    (id, thread_id, content, status, confidence_score, created_by, created_at)
                SELECT ?, id, ?, 'pending', ?, ?, ?
                FROM threads WHERE id = ? AND user_id = ?
                """,
                (
                    draft_id, content, confidence_score, created_by, utc_now_iso(),
                    thread_id, user_id,
                ),
            )
            if cursor.rowcount == 0:
                raise ThreadNotFoundError(thread_id)
            await db.execute(
                "UPDATE threads SET has_draft = 1 WHERE id = ? AND user_id = ?",
                (thread_id, user_id),
            )
            await db.commit()
            return draft_id
        finally:
            await db.close()

    async def list_drafts(self, thread_id: str) -> list[dict[str, Any]]:
        columns = ("id", "thread_id", "content", "status", "confidence_score", "created_by")
        db = await self._connect()
        try:
            cursor = await db.execute(
                f"SELECT {', '.join(columns)} FROM message_drafts "
                "WHERE thread_id = ? ORDER BY created_at",
                (thread_id,),
            )
            rows = await cursor.fetchall()
            return [row_to_dict(columns, row) for row in rows]
        finally:
            await db.close()

    # -- Tasks -----------------------------------------------------------------

    async def add_task(
        self,
        user_id: str,
        title: str,
        *,
        description: str | None = None,
        priority: str = "medium",
        due_date: str | None = None,
        source_thread_id: str | None = None,
    ) -> dict[str, Any]:
        task = {
            "id": _new_id(),
            "user_id": user_id,
            "title": title,
            "description": description,
            "status": "pending",
            "priority": priority,
            "due_date": due_date,
            "source_thread_id": source_thread_id,
            "created_at": utc_now_iso(),
        }
        db = await self._connect()
        try:
            await db.execute(
                f"INSERT INTO tasks ({', '.join(_TASK_COLUMNS)}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                tuple(task[c] for c in _TASK_COLUMNS),
            )
            await db.commit()
            logger.info("Added task: %s (%s)", title, task["id"])
            return task
        finally:
            await db.close()

    async def list_tasks(
        self,
        user_id: str,
        *,
        status: str | None = None,
        priority: str | None = None,
        limit: int = 25,
    ) -> list[dict[str, Any]]:
        sql = f"SELECT {', '.join(_TASK_COLUMNS)} FROM tasks WHERE user_id = ?"
        params: list[Any] = [user_id]
        if status:
            sql += " AND status = ?"
            params.append(status)
        if priority:
            sql += " AND priority = ?"
            params.append(priority)
        sql += " ORDER BY created_at DESC LIMIT ?"
        params.append(limit)

        db = await self._connect()
        try:
            cursor = await db.execute(sql, tuple(params))
            rows = await cursor.fetchall()
            return [row_to_dict(_TASK_COLUMNS, row) for row in rows]
        finally:
            await db.close()

    # -- Calendar events -------------------------------------------------------

    async def add_event(
        self,
        user_id: str,
        title: str,
        start_time: str,
        end_time: str,
        *,
        location: str | None = None,
        description: str | None = None,
        conference_url: str | None = None,
        attendees: list[str] | None = None,
        color: str | None = None,
        task_id: str | None = None,
        created_by: str = "user",
        source_thread_id: str | None = None,
    ) -> dict[str, Any]:
        """Insert an event. Times must be UTC ISO strings."""
        event = {
            "id": _new_id(),
            "user_id": user_id,
            "title": title,
            "start_time": start_time,
            "end_time": end_time,
            "location": location,
            "description": description,
            "conference_url": conference_url,
            "attendees": attendees or [],
            "color": color,
            "task_id": task_id,
            "created_by": created_by,
            "source_thread_id": source_thread_id,
            "created_at": utc_now_iso(),
        }
        row = tuple(
            dumps(event[c]) if c == "attendees" else event[c] for c in _EVENT_COLUMNS
        )
        db = await self._connect()
        try:
            await db.execute(
                f"INSERT INTO calendar_events ({', '.join(_EVENT_COLUMNS)}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                row,
            )
            await db.commit()
            logger.info("Added calendar event: %s (%s)", title, event["id"])
            return event
        finally:
            await db.close()

    async def list_events(
        self,
        user_id: str,
        *,
        start_from: str | None = None,
        start_before: str | None = None,
        end_by: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Events ordered by start time.

        ``start_from`` is inclusive, ``start_before`` exclusive and ``end_by``
        an inclusive bound on the end time.
        """
        sql = f"SELECT {', '.join(_EVENT_COLUMNS)} FROM calendar_events WHERE user_id = ?"
        params: list[Any] = [user_id]
        if start_from:
            sql += " AND start_time >= ?"
            params.append(start_from)
        if start_before:
            sql += " AND start_time < ?"
            params.append(start_before)
        if end_by:
            sql += " AND end_time <= ?"
            params.append(end_by)
        sql += " ORDER BY start_time ASC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)

        db = await self._connect()
        try:
            cursor = await db.execute(sql, tuple(params))
            rows = await cursor.fetchall()
            return [_event_from_row(row) for row in rows]
        finally:
            await db.close()

    # -- Shopify ---------------------------------------------------------------

    async def list_orders(
        self,
        user_id: str,
        *,
        order_number: str | None = None,
        customer_email: str | None = None,
        limit: int = 5,
    ) -> list[dict[str, Any]]:
        sql = f"SELECT {', '.join(_ORDER_COLUMNS)} FROM shopify_orders WHERE user_id = ?"
        params: list[Any] = [user_id]
        if customer_email:
            sql += " AND customer_email = ?"
            params.append(customer_email)
        if order_number:
            sql += " AND order_name = ?"
            params.append(order_number)
        sql += " ORDER BY created_at DESC LIMIT ?"
        params.append(limit)

        db = await self._connect()
        try:
            cursor = await db.execute(sql, tuple(params))
            rows = await cursor.fetchall()
            return [row_to_dict(_ORDER_COLUMNS, row) for row in rows]
        finally:
            await db.close()

    async def upsert_order(self, user_id: str, shopify_order_id: str, **fields: Any) -> None:
        """Insert or update an order keyed by its Shopify id."""
        db = await self._connect()
        try:
            await db.execute(
                """
                INSERT INTO shopify_orders
                    (id, user_id, shopify_order_id, order_name, customer_name, customer_email,
                     financial_status, fulfillment_status, total_price, currency,
                     line_items, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(shopify_order_id) DO UPDATE SET
                    order_name = excluded.order_name,
                    customer_email = excluded.customer_email,
                    financial_status = excluded.financial_status,
                    fulfillment_status = excluded.fulfillment_status,
                    total_price = excluded.total_price,
                    line_items = excluded.line_items
                """,
                (
                    _new_id(),
                    user_id,
                    shopify_order_id,
                    fields.get("order_name", ""),
                    fields.get("customer_name", ""),
                    fields.get("customer_email", ""),
                    fields.get("financial_status", "pending"),
                    fields.get("fulfillment_status", "unfulfilled"),
                    fields.get("total_price", "0.00"),
                    fields.get("currency", "USD"),
                    dumps(fields.get("line_items", [])),
                    fields.get("created_at") or utc_now_iso(),
                ),
            )
            await db.commit()
        finally:
            await db.close()

    async def upsert_customer(self, user_id: str, shopify_id: str, **fields: Any) -> None:
        """Insert or update a customer keyed by its Shopify id."""
        db = await self._connect()
        try:
            await db.execute(
                """
                INSERT OR REPLACE INTO shopify_customers
                    (shopify_id, user_id, email, orders_count, total_spent, tags, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    shopify_id,
                    user_id,
                    fields.get("email", ""),
                    fields.get("orders_count", 0),
                    fields.get("total_spent", "0.00"),
                    dumps(fields.get("tags", [])),
                    utc_now_iso(),
                ),
            )
            await db.commit()
        finally:
            await db.close()

    async def count_customers(self, user_id: str) -> int:
        db = await self._connect()
        try:
            cursor = await db.execute(
                "SELECT COUNT(*) FROM shopify_customers WHERE user_id = ?", (user_id,)
            )
            row = await cursor.fetchone()
            return int(row[0]) if row else 0
        finally:
            await db.close()

    # -- Scheduling-rule overrides ---------------------------------------------

    async def get_rules_override(self, scope: str, scope_id: str) -> dict[str, Any] | None:
        """Return the stored override dict for ``("user"|"workspace", id)``."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                "SELECT rules FROM scheduling_rules WHERE scope = ? AND scope_id = ?",
                (scope, scope_id),
            )
            row = await cursor.fetchone()
            return loads(row[0]) if row else None
        finally:
            await db.close()

    async def set_rules_override(self, scope: str, scope_id: str, rules: dict[str, Any]) -> None:
        db = await self._connect()
        try:
            await db.execute(
                """
                INSERT OR REPLACE INTO scheduling_rules (scope, scope_id, rules, updated_at)
                VALUES (?, ?, ?, ?)
                """,
                (scope, scope_id, dumps(rules), utc_now_iso()),
            )
            await db.commit()
        finally:
            await db.close()
