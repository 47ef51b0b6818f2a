"""Shared test fixtures for guidebot."""
from typing import Any, Optional

import pytest

from channels.base import Messenger
from database.store_memory import InMemoryStateStore
from dialog.engine import WorkflowEngine
from config.settings import EngineConfig
from models.schemas import ChatMessage
from workflows import build_registry
from workflows.services import AiAnswer, OrderDetail, School, ServiceRating, User


# ──────────────────────────────────────────────────────────────
#  Messenger / listener fakes
# ──────────────────────────────────────────────────────────────

class FakeMessenger(Messenger):
    """Records every call as ``(method, chat_id, payload...)``."""

    def __init__(self, platform: str = "telegram"):
        self.platform = platform
        self.calls: list[tuple[Any, ...]] = []

    async def send_text(self, chat_id, text):
        self.calls.append(("send_text", chat_id, text))

    async def send_menu(self, chat_id, text, rows):
        self.calls.append(("send_menu", chat_id, text, rows))

    async def send_inline_options(self, chat_id, text, buttons):
        self.calls.append(("send_inline_options", chat_id, text, buttons))

    async def send_inline_grid(self, chat_id, text, rows):
        self.calls.append(("send_inline_grid", chat_id, text, rows))

    async def edit_inline_grid(self, chat_id, message_id, text, rows):
        self.calls.append(("edit_inline_grid", chat_id, message_id, text, rows))

    async def send_contact_request(self, chat_id, text, button_text):
        self.calls.append(("send_contact_request", chat_id, text, button_text))

    async def send_file(self, chat_id, file):
        self.calls.append(("send_file", chat_id, file))

    async def send_typing(self, chat_id):
        self.calls.append(("send_typing", chat_id))

    def methods(self) -> list[str]:
        return [c[0] for c in self.calls]

    def texts(self) -> list[str]:
        return [c[2] for c in self.calls if c[0] != "send_typing" and len(c) > 2 and isinstance(c[2], str)]

    def last(self, method: str) -> Optional[tuple[Any, ...]]:
        for call in reversed(self.calls):
            if call[0] == method:
                return call
        return None

    def clear(self) -> None:
        self.calls.clear()


class RecordingListener:
    def __init__(self):
        self.messages: list[ChatMessage] = []

    async def on_chat_message(self, message: ChatMessage) -> None:
        self.messages.append(message)


# ──────────────────────────────────────────────────────────────
#  Service fakes
# ──────────────────────────────────────────────────────────────

class FakeAuth:
    def __init__(self, users: Optional[list[User]] = None):
        self.users: list[User] = list(users or [])
        self.registered: list[User] = []
        self.updated: list[User] = []
        self.fail_register = False

    async def find_user(self, phone: str = "", telegram_id: int = 0, instagram_id: str = ""):
        for user in self.users:
            if phone and user.phone == phone:
                return user
            if telegram_id and user.telegram_id == telegram_id:
                return user
            if instagram_id and user.instagram_id == instagram_id:
                return user
        return None

    async def register_user(self, name: str, phone: str, telegram_id: int = 0) -> User:
        if self.fail_register:
            raise RuntimeError("auth service unavailable")
        user = User(uuid=f"u-{len(self.users) + 1}", name=name, phone=phone, telegram_id=telegram_id)
        self.users.append(user)
        self.registered.append(user)
        return user

    async def update_user(self, user: User) -> None:
        self.updated.append(user)


class FakeCrm:
    def __init__(self, orders: Optional[list[OrderDetail]] = None):
        self.orders: list[OrderDetail] = list(orders or [])
        self.contacts: list[User] = []
        self.ratings: list[ServiceRating] = []
        self.school_updates: list[tuple[str, str]] = []
        self.products: dict[str, str] = {}
        self.fail_orders = False

    async def create_contact(self, user: User) -> str:
        self.contacts.append(user)
        return f"crm-{len(self.contacts)}"

    async def get_orders(self, user: User) -> list[OrderDetail]:
        if self.fail_orders:
            raise RuntimeError("crm down")
        return list(self.orders)

    async def get_order_products(self, order_id: str) -> str:
        return self.products.get(order_id, f"products of {order_id}")

    async def create_rating(self, rating: ServiceRating) -> None:
        self.ratings.append(rating)

    async def update_contact_school(self, contact_id: str, school_name: str) -> None:
        self.school_updates.append((contact_id, school_name))


class FakeAI:
    def __init__(self):
        self.questions: list[str] = []
        self.fail = False

    async def ask(self, user: User, message: str) -> AiAnswer:
        if self.fail:
            raise RuntimeError("model overloaded")
        self.questions.append(message)
        return AiAnswer(text=f"answer: {message}", assistant="dark")


class FakeSchools:
    def __init__(self, schools: Optional[list[School]] = None):
        self.schools: list[School] = list(schools or [])

    async def active_schools(self) -> list[School]:
        return [s for s in self.schools if s.active]

    async def find_by_code(self, code: str) -> Optional[School]:
        return next((s for s in self.schools if s.code == code), None)


# ──────────────────────────────────────────────────────────────
#  Fixtures
# ──────────────────────────────────────────────────────────────

@pytest.fixture
def messenger():
    return FakeMessenger("telegram")


@pytest.fixture
def store():
    return InMemoryStateStore()


@pytest.fixture
def known_user():
    return User(uuid="u-known", name="Olena", phone="+380501112233", telegram_id=42, crm_id="crm-7")


@pytest.fixture
def auth(known_user):
    return FakeAuth([known_user])


@pytest.fixture
def crm():
    return FakeCrm([
        OrderDetail(id="o-3", subject="SO-3", status="Нове", ttn="20450000000003"),
        OrderDetail(id="o-2", subject="SO-2", status="Виконано"),
        OrderDetail(id="o-1", subject="SO-1", status="Виконано", ttn="20450000000001"),
    ])


@pytest.fixture
def ai():
    return FakeAI()


@pytest.fixture
def schools():
    return FakeSchools([
        School(id=f"s{i}", name=f"School {i}", code=f"code{i}") for i in range(1, 8)
    ])


@pytest.fixture
def registry(auth, crm, ai, schools):
    return build_registry(auth, crm, ai, schools)


@pytest.fixture
def engine(registry, store):
    return WorkflowEngine(registry, store, EngineConfig())
