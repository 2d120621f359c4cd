"""Inbox tools: search threads, read a thread, look up contacts and orders."""

from __future__ import annotations

import logging
from datetime import timedelta
from enum import StrEnum
from typing import TYPE_CHECKING

from pydantic import Field

from aiva.context import resolve_user_id
from aiva.timeutil import parse_date
from aiva.tools.base import NOT_AUTHENTICATED, ToolName, ToolParams, ToolResult
from aiva.tools.registry import registry
from aiva.workspace.store import WorkspaceStore

if TYPE_CHECKING:
    from aiva.context import RequestContext

logger = logging.getLogger(__name__)

_CATEGORY = "inbox"

# Rows fetched before in-memory sender/keyword filtering is applied
_FILTER_SCAN_LIMIT = 200


class Channel(StrEnum):
    ALL = "ALL"
    GMAIL = "GMAIL"
    SLACK = "SLACK"
    WHATSAPP = "WHATSAPP"


class Priority(StrEnum):
    URGENT = "urgent"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# -- search_inbox --------------------------------------------------------------


class SearchInboxParams(ToolParams):
    channel: Channel = Field(default=Channel.ALL, description="Which integration to search")
    date_from: str | None = Field(
        default=None, description="ISO date for the start of the range, e.g. '2026-02-22'"
    )
    date_to: str | None = Field(
        default=None, description="ISO date for the end of the range (inclusive)"
    )
    sender_name: str | None = Field(default=None, description="Sender name (partial match)")
    sender_email: str | None = Field(default=None, description="Sender email (partial match)")
    is_unread: bool | None = Field(default=None, description="Filter by unread status")
    priority: Priority | None = Field(default=None, description="Filter by priority level")
    search_query: str | None = Field(
        default=None, description="Keywords to search in subject and snippet"
    )
    limit: int = Field(default=25, ge=1, le=100, description="Max results to return")


def _matches(thread: dict, sender_name: str | None, sender_email: str | None,
             search_query: str | None) -> bool:
    name = (thread.get("contact_name") or "").lower()
    email = (thread.get("contact_email") or "").lower()
    if sender_name:
        needle = sender_name.lower()
        if needle not in name and needle not in email:
            return False
    if sender_email and sender_email.lower() not in email:
        return False
    if search_query:
        needle = search_query.lower()
        subject = (thread.get("primary_subject") or "").lower()
        snippet = (thread.get("snippet") or "").lower()
        if needle not in subject and needle not in snippet:
            return False
    return True


@registry.tool(
    name=ToolName.SEARCH_INBOX,
    description=(
        "Search the user's unified inbox (Gmail, Slack) by channel, date range, sender, "
        "read state, priority or keywords. Use this whenever the user asks to find, "
        "summarize or filter messages. Never guess about email content."
    ),
    category=_CATEGORY,
    params_model=SearchInboxParams,
)
async def search_inbox(
    channel: Channel = Channel.ALL,
    date_from: str | None = None,
    date_to: str | None = None,
    sender_name: str | None = None,
    sender_email: str | None = None,
    is_unread: bool | None = None,
    priority: Priority | None = None,
    search_query: str | None = None,
    limit: int = 25,
    context: RequestContext | None = None,
) -> ToolResult:
    user_id = resolve_user_id(context)
    if user_id is None:
        return ToolResult(error=NOT_AUTHENTICATED)

    post_filter = bool(sender_name or sender_email or search_query)
    date_before = (
        (parse_date(date_to) + timedelta(days=1)).isoformat() if date_to else None
    )
    threads = await WorkspaceStore.get().search_threads(
        user_id,
        provider=None if channel == Channel.ALL else channel.lower(),
        date_from=date_from,
        date_before=date_before,
        is_unread=is_unread,
        priority=str(priority) if priority else None,
        limit=_FILTER_SCAN_LIMIT if post_filter else limit,
    )
    if post_filter:
        threads = [t for t in threads if _matches(t, sender_name, sender_email, search_query)]
    threads = threads[:limit]

    if not threads:
        return ToolResult(data={"threads": [], "count": 0, "message": "No matching threads found."})

    formatted = [
        {
            "threadId": t["id"],
            "sender": t.get("contact_name") or t.get("contact_email") or "Unknown",
            "senderEmail": t.get("contact_email") or "",
            "subject": t.get("primary_subject") or "(no subject)",
            "snippet": (t.get("snippet") or "")[:150],
            "timestamp": t["last_message_at"],
            "priority": t.get("priority") or "medium",
            "provider": (t.get("provider") or "gmail").lower(),
            "isUnread": t["is_unread"],
            "messageCount": t.get("message_count") or 0,
            "hasDraft": t["has_draft"],
        }
        for t in threads
    ]
    return ToolResult(data={"threads": formatted, "count": len(formatted)})


# -- get_thread_detail ---------------------------------------------------------


class GetThreadDetailParams(ToolParams):
    thread_id: str = Field(description="The thread id")


@registry.tool(
    name=ToolName.GET_THREAD_DETAIL,
    description="Fetch the full message history of one thread.",
    category=_CATEGORY,
    params_model=GetThreadDetailParams,
)
async def get_thread_detail(
    thread_id: str,
    context: RequestContext | None = None,
) -> ToolResult:
    user_id = resolve_user_id(context)
    if user_id is None:
        return ToolResult(error=NOT_AUTHENTICATED)

    messages = await WorkspaceStore.get().get_thread_messages(user_id, thread_id)
    formatted = [
        {
            "from": m["sender_name"] or m["sender_email"],
            "email": m["sender_email"],
            "subject": m["subject"],
            "body": (m["body"] or m["snippet"] or "")[:500],
            "timestamp": m["timestamp"],
            "isRead": m["is_read"],
        }
        for m in messages
    ]
    return ToolResult(data={"messages": formatted, "count": len(formatted)})


# -- get_contact_info ----------------------------------------------------------


class GetContactInfoParams(ToolParams):
    email: str | None = Field(default=None, description="Contact email address")
    name: str | None = Field(default=None, description="Contact name (partial match)")


@registry.tool(
    name=ToolName.GET_CONTACT_INFO,
    description="Look up CRM details for a contact by email or name.",
    category=_CATEGORY,
    params_model=GetContactInfoParams,
)
async def get_contact_info(
    email: str | None = None,
    name: str | None = None,
    context: RequestContext | None = None,
) -> ToolResult:
    user_id = resolve_user_id(context)
    if user_id is None:
        return ToolResult(error=NOT_AUTHENTICATED)

    contacts = await WorkspaceStore.get().find_contacts(user_id, email=email, name=name)
    return ToolResult(data={"contacts": contacts, "count": len(contacts)})


# -- get_shopify_orders --------------------------------------------------------


class GetShopifyOrdersParams(ToolParams):
    order_number: str | None = Field(default=None, description="Order number, e.g. '#1042'")
    customer_email: str | None = Field(default=None, description="Filter by customer email")
    limit: int = Field(default=5, ge=1, le=50, description="Max results")


@registry.tool(
    name=ToolName.GET_SHOPIFY_ORDERS,
    description="Fetch Shopify orders for order status, tracking or purchase history questions.",
    category=_CATEGORY,
    params_model=GetShopifyOrdersParams,
)
async def get_shopify_orders(
    order_number: str | None = None,
    customer_email: str | None = None,
    limit: int = 5,
    context: RequestContext | None = None,
) -> ToolResult:
    user_id = resolve_user_id(context)
    if user_id is None:
        return ToolResult(error=NOT_AUTHENTICATED)

    orders = await WorkspaceStore.get().list_orders(
        user_id, order_number=order_number, customer_email=customer_email, limit=limit
    )
    return ToolResult(data={"orders": orders, "count": len(orders)})
