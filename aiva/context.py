"""RequestContext: carries caller identity through the request lifecycle."""

from dataclasses import dataclass, field

from aiva.config import settings


@dataclass
class RequestContext:
    """Who is calling, and from where.

    Attributes:
        user_id: Authenticated user identifier. Empty when the caller could
            not be resolved.
        timezone: IANA timezone of the caller. Defaults to the configured zone.
        session_id: Conversation session the request belongs to, if any.
        workspace_id: Workspace used for settings fallbacks.
        metadata: Transport-specific extras (e.g. request id).
    """

    user_id: str = ""
    timezone: str = ""
    session_id: str = ""
    workspace_id: str = ""
    metadata: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.timezone:
            self.timezone = settings.default_timezone
        if not self.workspace_id:
            self.workspace_id = settings.default_workspace_id

    @property
    def authenticated(self) -> bool:
        return bool(self.user_id)


def resolve_user_id(context: "RequestContext | None") -> str | None:
    """Return the caller's user id, or None when the caller is unknown."""
    if context is None or not context.authenticated:
        return None
    return context.user_id
