"""
Collaborator contracts consumed by the shipped workflows.

Only the shapes live here; the user directory, CRM, AI assistant and
school catalogue are provided by the hosting application.
"""
from __future__ import annotations

from typing import Optional, Protocol

from pydantic import BaseModel

ROLE_MANAGER = "manager"
ROLE_ADMIN = "admin"

ORDER_STATUS_NEW = "Нове"
ORDER_STATUS_PROCESSING = "Оброблення замовлення"
ORDER_STATUS_INVOICED = "Рахунок виставлено"

_ACTIVE_STATUSES = frozenset({ORDER_STATUS_NEW, ORDER_STATUS_PROCESSING, ORDER_STATUS_INVOICED})


# ──────────────────────────────────────────────────────────────
#  Entities
# ──────────────────────────────────────────────────────────────

class User(BaseModel):
    uuid: str = ""
    name: str = ""
    email: str = ""
    phone: str = ""
    telegram_id: int = 0
    instagram_id: str = ""
    crm_id: str = ""
    role: str = "user"

    @property
    def is_manager(self) -> bool:
        return self.role in (ROLE_MANAGER, ROLE_ADMIN)


class OrderDetail(BaseModel):
    id: str
    subject: str = ""
    status: str = ""
    ttn: str = ""                       # parcel tracking number

    @property
    def is_active(self) -> bool:
        return self.status in _ACTIVE_STATUSES


class ServiceRating(BaseModel):
    order_number: str
    contact_id: str
    rating: int


class School(BaseModel):
    id: str
    name: str
    code: str = ""
    active: bool = True


class AiAnswer(BaseModel):
    text: str
    assistant: str = ""


# ──────────────────────────────────────────────────────────────
#  Services
# ──────────────────────────────────────────────────────────────

class AuthService(Protocol):
    async def find_user(
        self, phone: str = "", telegram_id: int = 0, instagram_id: str = "",
    ) -> Optional[User]:
        """Match on any of the given non-empty identifiers; None when unknown."""

    async def register_user(self, name: str, phone: str, telegram_id: int = 0) -> User:
        ...

    async def update_user(self, user: User) -> None:
        ...


class CrmService(Protocol):
    async def create_contact(self, user: User) -> str:
        """Create a CRM contact and return its id."""

    async def get_orders(self, user: User) -> list[OrderDetail]:
        """Newest first."""

    async def get_order_products(self, order_id: str) -> str:
        """Pre-formatted product list for one order."""

    async def create_rating(self, rating: ServiceRating) -> None:
        ...

    async def update_contact_school(self, contact_id: str, school_name: str) -> None:
        ...


class AIService(Protocol):
    async def ask(self, user: User, message: str) -> AiAnswer:
        ...


class SchoolDirectory(Protocol):
    async def active_schools(self) -> list[School]:
        ...

    async def find_by_code(self, code: str) -> Optional[School]:
        ...
