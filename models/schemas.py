"""
Core data models for the guided-dialog engine.
These are the universal types shared across all modules.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ident(value: Any) -> str:
    """Plain string form of a workflow or step id (accepts str enums)."""
    if isinstance(value, Enum):
        return str(value.value)
    return str(value) if value is not None else ""


# ──────────────────────────────────────────────────────────────
#  Enums
# ──────────────────────────────────────────────────────────────

class Platform(str, Enum):
    TELEGRAM = "telegram"
    WHATSAPP = "whatsapp"
    INSTAGRAM = "instagram"


class MessageDirection(str, Enum):
    INCOMING = "incoming"
    OUTGOING = "outgoing"


# ──────────────────────────────────────────────────────────────
#  Persisted workflow state
# ──────────────────────────────────────────────────────────────

class PaginationState(BaseModel):
    current_page: int = 1
    total_pages: int = 1
    total_items: int = 0
    items_per_page: int = 5


ModelT = TypeVar("ModelT", bound=BaseModel)


class ChatState(BaseModel):
    """
    A user's position inside a workflow. One row per (platform, user_id).

    A row exists only while the user has an active, incomplete workflow;
    absence of a row means the user is idle.
    """
    platform: str
    user_id: str
    chat_id: str                                # may differ from user_id on some channels
    workflow_id: str
    current_step: str
    data: dict[str, Any] = {}                   # workflow-local key/value bag
    pagination: Optional[PaginationState] = None
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def key(self) -> tuple[str, str]:
        return self.platform, self.user_id

    # ── Data bag accessors ────────────────────────────────────

    def get_str(self, key: str) -> str:
        value = self.data.get(key)
        return value if isinstance(value, str) else ""

    def get_int(self, key: str) -> int:
        value = self.data.get(key)
        if isinstance(value, bool):
            return 0
        if isinstance(value, (int, float)):
            return int(value)
        return 0

    def get_bool(self, key: str) -> bool:
        value = self.data.get(key)
        return value if isinstance(value, bool) else False

    def set(self, key: str, value: Any) -> None:
        self.data[key] = value

    def merge_data(self, updates: Optional[dict[str, Any]]) -> None:
        """Shallow overwrite; later writes win."""
        if updates:
            self.data.update(updates)

    def touch(self) -> None:
        self.updated_at = _utcnow()

    def view(self, model: type[ModelT]) -> ModelT:
        """Typed read-only projection of ``data`` for a workflow's data model."""
        return model.model_validate(self.data)

    # ── Pagination sub-state ──────────────────────────────────

    def init_pagination(self, total_items: int, items_per_page: int) -> PaginationState:
        total_pages = -(-total_items // items_per_page) if items_per_page > 0 else 1
        self.pagination = PaginationState(
            current_page=1,
            total_pages=max(total_pages, 1),
            total_items=total_items,
            items_per_page=items_per_page,
        )
        return self.pagination

    def next_page(self) -> bool:
        if self.pagination is None:
            return False
        if self.pagination.current_page < self.pagination.total_pages:
            self.pagination.current_page += 1
            return True
        return False

    def prev_page(self) -> bool:
        if self.pagination is None:
            return False
        if self.pagination.current_page > 1:
            self.pagination.current_page -= 1
            return True
        return False


# ──────────────────────────────────────────────────────────────
#  Step ↔ engine contract (never persisted)
# ──────────────────────────────────────────────────────────────

@dataclass
class StepResult:
    """The step's instruction to the engine."""
    next_step: Optional[str] = None
    update_state: Optional[dict[str, Any]] = None
    complete: bool = False
    error: Optional[Exception] = None

    @classmethod
    def stay(cls, **updates: Any) -> "StepResult":
        return cls(update_state=updates or None)

    @classmethod
    def go(cls, step: str, **updates: Any) -> "StepResult":
        return cls(next_step=ident(step), update_state=updates or None)

    @classmethod
    def finish(cls, next_workflow: str = "", **updates: Any) -> "StepResult":
        if next_workflow:
            updates["next_workflow"] = ident(next_workflow)
        return cls(complete=True, update_state=updates or None)

    @classmethod
    def fail(cls, error: Exception) -> "StepResult":
        return cls(error=error)


@dataclass
class UserInput:
    """
    A normalized inbound event. At most one of text / callback_data / phone
    is meaningfully populated.
    """
    text: str = ""
    callback_data: str = ""
    phone: str = ""
    message_id: str = ""


# ──────────────────────────────────────────────────────────────
#  Wire-derived values
# ──────────────────────────────────────────────────────────────

class DeepLinkData(BaseModel):
    """Parsed invite parameter (``<type>_<code>``)."""
    model_config = ConfigDict(frozen=True)

    type: str = ""
    code: str = ""
    extra: str = ""

    @property
    def has_code(self) -> bool:
        return bool(self.code)

    @property
    def is_empty(self) -> bool:
        return not self.type and not self.code

    @property
    def full_code(self) -> str:
        if not self.code:
            return self.type
        return f"{self.type}_{self.code}"

    @property
    def is_school(self) -> bool:
        return self.type == "school"


@dataclass(frozen=True)
class CallbackData:
    action: str
    value: str = ""


# ──────────────────────────────────────────────────────────────
#  Channel UI values
# ──────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class MenuButton:
    """A reply-keyboard button; the user's answer is the button text."""
    text: str


@dataclass(frozen=True)
class InlineButton:
    """A button carrying an opaque callback token."""
    text: str
    data: str


@dataclass
class FileMessage:
    filename: str
    mime_type: str = ""
    content: bytes = b""
    caption: str = ""
    url: str = ""

    @property
    def media_type(self) -> str:
        for prefix in ("image", "video", "audio"):
            if self.mime_type.startswith(f"{prefix}/"):
                return prefix
        return "document"


class ChatMessage(BaseModel):
    """A text message mirrored to an external system by a MessageListener."""
    platform: str
    user_id: str
    chat_id: str
    direction: MessageDirection
    sender: str = "user"                        # "user" | "bot"
    text: str
    created_at: datetime = Field(default_factory=_utcnow)
    metadata: dict[str, Any] = {}
