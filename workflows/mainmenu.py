"""
Main menu workflow — the account area a registered user lives in.

The menu never completes: every branch returns to ``main_menu`` (or to
``my_office`` for its sub-menu), and the AI steps stay put until the user
says "назад".
"""
from __future__ import annotations

import html
import structlog
from enum import Enum

from pydantic import BaseModel

from dialog.base import Step, Workflow
from dialog.callbacks import ACTION_PRODUCTS, is_rate, parse_callback, rating
from dialog.inputs import resolve_choice, resolve_menu_choice
from dialog.keyboards import products_button, rating_row, reply_rows
from models.schemas import Platform, StepResult
from workflows.common import USER_NOT_FOUND_TEXT, escape_for, resolve_user
from workflows.ids import WorkflowId
from workflows.services import AIService, AuthService, CrmService, OrderDetail, ServiceRating

logger = structlog.get_logger()


class MainMenuStep(str, Enum):
    MAIN_MENU = "main_menu"
    MY_OFFICE = "my_office"
    CURRENT_ORDER = "current_order"
    COMPLETED_ORDERS = "completed_orders"
    SERVICE_RATE = "service_rate"
    AI_CONSULTANT = "ai_consultant"
    MAKE_ORDER = "make_order"


class MainMenuData(BaseModel):
    current_order_id: str = ""
    completed_order_ids: str = ""       # comma-joined, newest first
    rating_order_number: str = ""


BTN_MY_OFFICE = "📦Особистий кабінет"
BTN_SERVICE_RATE = "⭐Оцінка сервісу"
BTN_ORDER_STATUS = "🛒Статус замовлення"
BTN_AI_CONSULTANT = "👋 AI-консультація"
BTN_MAKE_ORDER = "Зробити замовлення😎"
BTN_CURRENT_ORDER = "🛍️Поточні замовлення"
BTN_COMPLETED_ORDERS = "✅Виконані замовлення"
BTN_BACK = "↩️Назад"

MAIN_MENU_ROWS = reply_rows([
    [BTN_MY_OFFICE, BTN_SERVICE_RATE],
    [BTN_ORDER_STATUS],
    [BTN_AI_CONSULTANT, BTN_MAKE_ORDER],
])
MY_OFFICE_ROWS = reply_rows([
    [BTN_CURRENT_ORDER, BTN_COMPLETED_ORDERS],
    [BTN_BACK],
])

ORDERS_UNAVAILABLE_TEXT = "Не вдалося отримати інформацію про замовлення."
PRODUCTS_UNAVAILABLE_TEXT = "Не вдалося отримати товари."
COMPLETED_ORDERS_LIMIT = 3


def format_ttn(ttn: str, platform: str) -> str:
    url = f"https://novaposhta.ua/tracking/{ttn}"
    if platform == Platform.TELEGRAM.value:
        return f'\nТТН: <a href="{html.escape(url)}">{html.escape(ttn)}</a>'
    return f"\nТТН: {ttn}\n{url}"


def format_order_message(order: OrderDetail, customer_name: str, platform: str, number: int = 0) -> str:
    """Order card; Telegram gets an HTML tracking link, others a bare URL."""
    msg = f"Замовник: {escape_for(platform, customer_name)}\nСтатус: {escape_for(platform, order.status)}"
    if number:
        msg = f"Замовлення №{number}\n\n{msg}"
    if order.subject:
        msg += f"\nНомер замовлення: {escape_for(platform, order.subject)}"
    if order.ttn:
        msg += format_ttn(order.ttn, platform)
    return msg


def _is_back(text: str) -> bool:
    text = text.strip()
    return text == BTN_BACK or text.lower() == "назад"


# ══════════════════════════════════════════════════════════════
#  MENUS
# ══════════════════════════════════════════════════════════════

class MainMenu(Step):
    id = MainMenuStep.MAIN_MENU
    transitions = (
        MainMenuStep.MY_OFFICE, MainMenuStep.SERVICE_RATE, MainMenuStep.CURRENT_ORDER,
        MainMenuStep.AI_CONSULTANT, MainMenuStep.MAKE_ORDER,
    )

    TARGETS = {
        BTN_MY_OFFICE: MainMenuStep.MY_OFFICE,
        BTN_SERVICE_RATE: MainMenuStep.SERVICE_RATE,
        BTN_ORDER_STATUS: MainMenuStep.CURRENT_ORDER,
        BTN_AI_CONSULTANT: MainMenuStep.AI_CONSULTANT,
        BTN_MAKE_ORDER: MainMenuStep.MAKE_ORDER,
    }

    async def enter(self, state, messenger):
        await messenger.send_menu(
            state.chat_id, "Натисніть на потрібний варіант, щоб перейти у бажаний розділ 👇", MAIN_MENU_ROWS,
        )
        return StepResult.stay()

    async def handle_input(self, state, messenger, user_input):
        target = self.TARGETS.get(resolve_menu_choice(user_input, MAIN_MENU_ROWS))
        return StepResult.go(target) if target else StepResult.stay()


class MyOffice(Step):
    id = MainMenuStep.MY_OFFICE
    transitions = (MainMenuStep.CURRENT_ORDER, MainMenuStep.COMPLETED_ORDERS, MainMenuStep.MAIN_MENU)

    TARGETS = {
        BTN_CURRENT_ORDER: MainMenuStep.CURRENT_ORDER,
        BTN_COMPLETED_ORDERS: MainMenuStep.COMPLETED_ORDERS,
        BTN_BACK: MainMenuStep.MAIN_MENU,
    }

    async def enter(self, state, messenger):
        await messenger.send_menu(state.chat_id, "Що саме цікавить?", MY_OFFICE_ROWS)
        return StepResult.stay()

    async def handle_input(self, state, messenger, user_input):
        target = self.TARGETS.get(resolve_menu_choice(user_input, MY_OFFICE_ROWS))
        return StepResult.go(target) if target else StepResult.stay()


# ══════════════════════════════════════════════════════════════
#  ORDERS
# ══════════════════════════════════════════════════════════════

class _OrdersStep(Step):
    """Shared plumbing for the steps that read orders from the CRM."""

    back_to: MainMenuStep = MainMenuStep.MAIN_MENU

    def __init__(self, auth: AuthService, crm: CrmService):
        self.auth = auth
        self.crm = crm

    async def _load_orders(self, state, messenger):
        """(user, orders), or None after telling the user what went wrong."""
        user = await resolve_user(state, self.auth)
        if user is None:
            await messenger.send_text(state.chat_id, USER_NOT_FOUND_TEXT)
            return None
        try:
            orders = await self.crm.get_orders(user)
        except Exception as e:
            logger.warning("crm_orders_failed", user_uuid=user.uuid, error=str(e))
            await messenger.send_text(state.chat_id, ORDERS_UNAVAILABLE_TEXT)
            return None
        return user, orders

    async def _send_products(self, state, messenger, data: str) -> bool:
        cb = parse_callback(data)
        if cb is None or cb.action != ACTION_PRODUCTS or not cb.value:
            return False
        try:
            products = await self.crm.get_order_products(cb.value)
        except Exception as e:
            logger.warning("crm_products_failed", order_id=cb.value, error=str(e))
            products = PRODUCTS_UNAVAILABLE_TEXT
        await messenger.send_text(state.chat_id, escape_for(state.platform, products))
        return True


class CurrentOrder(_OrdersStep):
    id = MainMenuStep.CURRENT_ORDER
    transitions = (MainMenuStep.MAIN_MENU,)

    async def enter(self, state, messenger):
        loaded = await self._load_orders(state, messenger)
        if loaded is None:
            return StepResult.go(self.back_to)
        user, orders = loaded

        active = next((o for o in orders if o.is_active), None)
        if active is None:
            await messenger.send_text(state.chat_id, "У вас немає активних замовлень.")
            return StepResult.go(self.back_to)

        await messenger.send_inline_options(
            state.chat_id,
            format_order_message(active, user.name, state.platform),
            [products_button(active.id)],
        )
        return StepResult.stay(current_order_id=active.id)

    async def handle_input(self, state, messenger, user_input):
        order_id = state.get_str("current_order_id")
        buttons = [products_button(order_id)] if order_id else []
        await self._send_products(state, messenger, resolve_choice(user_input, buttons))
        return StepResult.go(self.back_to)


class CompletedOrders(_OrdersStep):
    id = MainMenuStep.COMPLETED_ORDERS
    transitions = (MainMenuStep.MY_OFFICE,)
    back_to = MainMenuStep.MY_OFFICE

    @staticmethod
    def _buttons(order_ids: list[str]):
        return [products_button(oid, f"📋 Товари №{i}") for i, oid in enumerate(order_ids, start=1)]

    async def enter(self, state, messenger):
        loaded = await self._load_orders(state, messenger)
        if loaded is None:
            return StepResult.go(self.back_to)
        user, orders = loaded

        completed = [o for o in orders if not o.is_active][:COMPLETED_ORDERS_LIMIT]
        if not completed:
            await messenger.send_text(state.chat_id, "У вас немає виконаних замовлень.")
            return StepResult.go(self.back_to)

        for i, order in enumerate(completed, start=1):
            await messenger.send_text(
                state.chat_id, format_order_message(order, user.name, state.platform, number=i),
            )
        order_ids = [o.id for o in completed]
        await messenger.send_inline_options(
            state.chat_id, "Оберіть замовлення для перегляду товарів:", self._buttons(order_ids),
        )
        return StepResult.stay(completed_order_ids=",".join(order_ids))

    async def handle_input(self, state, messenger, user_input):
        ids_str = state.get_str("completed_order_ids")
        order_ids = ids_str.split(",") if ids_str else []
        await self._send_products(state, messenger, resolve_choice(user_input, self._buttons(order_ids)))
        return StepResult.go(self.back_to)


class ServiceRate(_OrdersStep):
    """Rate the latest order 1..5; the rating lands in the CRM."""

    id = MainMenuStep.SERVICE_RATE
    transitions = (MainMenuStep.MAIN_MENU,)

    async def enter(self, state, messenger):
        loaded = await self._load_orders(state, messenger)
        if loaded is None:
            return StepResult.go(self.back_to)
        _, orders = loaded
        if not orders:
            await messenger.send_text(state.chat_id, "У вас немає замовлень для оцінки.")
            return StepResult.go(self.back_to)

        text = (
            "Як вам сервіс? 🙌\nЗалиште, будь ласка, оцінку — це допоможе нам ставати кращими.\n\n"
            "Ваш відгук важливий для нас!"
        )
        await messenger.send_inline_options(state.chat_id, text, rating_row())
        return StepResult.stay(rating_order_number=orders[0].id)

    async def handle_input(self, state, messenger, user_input):
        cb = parse_callback(resolve_choice(user_input, rating_row()))
        if not is_rate(cb):
            if _is_back(user_input.text):
                return StepResult.go(self.back_to)
            return StepResult.stay()
        score = rating(cb)
        if not score:
            return StepResult.stay()

        user = await resolve_user(state, self.auth)
        if user is None:
            await messenger.send_text(state.chat_id, USER_NOT_FOUND_TEXT)
            return StepResult.go(self.back_to)

        try:
            contact_id = user.crm_id or await self.crm.create_contact(user)
            await self.crm.create_rating(ServiceRating(
                order_number=state.get_str("rating_order_number"),
                contact_id=contact_id,
                rating=score,
            ))
        except Exception as e:
            logger.warning("service_rating_failed", user_uuid=user.uuid, error=str(e))
            await messenger.send_text(state.chat_id, "Не вдалося зберегти оцінку. Спробуйте пізніше.")
            return StepResult.go(self.back_to)

        logger.info("service_rated", user_uuid=user.uuid, rating=score)
        await messenger.send_text(state.chat_id, "Ваша оцінка успішно створена! 🎉\n\nДякуємо за ваш відгук!")
        return StepResult.go(self.back_to)


# ══════════════════════════════════════════════════════════════
#  AI ASSISTANT
# ══════════════════════════════════════════════════════════════

class _AssistantStep(Step):
    """Free-text conversation with the AI assistant until "назад"."""

    transitions = (MainMenuStep.MAIN_MENU,)
    greeting = ""

    def __init__(self, auth: AuthService, ai: AIService):
        self.auth = auth
        self.ai = ai

    async def enter(self, state, messenger):
        await messenger.send_text(state.chat_id, self.greeting)
        return StepResult.stay()

    async def handle_input(self, state, messenger, user_input):
        text = user_input.text.strip()
        if _is_back(text):
            return StepResult.go(MainMenuStep.MAIN_MENU)
        if not text:
            return StepResult.stay()

        user = await resolve_user(state, self.auth)
        if user is None:
            await messenger.send_text(state.chat_id, USER_NOT_FOUND_TEXT)
            return StepResult.stay()

        await messenger.send_typing(state.chat_id)
        try:
            answer = await self.ai.ask(user, text)
        except Exception as e:
            logger.warning("ai_request_failed", user_uuid=user.uuid, step_id=self.step_id, error=str(e))
            await messenger.send_text(state.chat_id, "Виникла помилка при обробці запиту. Спробуйте ще раз.")
            return StepResult.stay()

        await messenger.send_text(state.chat_id, escape_for(state.platform, answer.text))
        return StepResult.stay()


class AIConsultant(_AssistantStep):
    id = MainMenuStep.AI_CONSULTANT
    greeting = (
        "Привіт! Я — консультант бренду DARK 🖤\nДопоможу з вибором товарів, проконсультую щодо "
        "продукції та оформлення замовлення.\n\nНапишіть \"назад\" щоб повернутися в меню."
    )


class MakeOrder(_AssistantStep):
    id = MainMenuStep.MAKE_ORDER
    greeting = "Готові оформити замовлення!\n\nНапишіть \"назад\" щоб повернутися в меню."


# ══════════════════════════════════════════════════════════════
#  WORKFLOW
# ══════════════════════════════════════════════════════════════

class MainMenuWorkflow(Workflow):
    id = WorkflowId.MAINMENU
    initial_step = MainMenuStep.MAIN_MENU
    data_model = MainMenuData

    def __init__(self, auth: AuthService, crm: CrmService, ai: AIService):
        super().__init__([
            MainMenu(),
            MyOffice(),
            CurrentOrder(auth, crm),
            CompletedOrders(auth, crm),
            ServiceRate(auth, crm),
            AIConsultant(auth, ai),
            MakeOrder(auth, ai),
        ])
