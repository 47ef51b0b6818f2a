"""
Onboarding workflow — identify the user by phone, register newcomers,
honour the invite link they arrived with, then hand over to the main menu.

  hello ─┬─ (whatsapp) choose_phone ─┐
         └─ request_phone ───────────┴─ check_user ─┬─ request_name → confirm_data ─┐
                                                    └───────────────────────────────┴─ process_deep_link
  process_deep_link ─┬─ (dl) select_school ─┐
                     └──────────────────────┴─ done → mainmenu
"""
from __future__ import annotations

import structlog
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from dialog.base import AutoStep, Step, Workflow
from dialog.callbacks import (
    ACTION_SELECT, build_callback, is_cancel, is_confirm, is_noop, is_page,
    is_select, page_number, parse_callback, selected_id,
)
from dialog.deeplink import TYPE_REFERRAL
from dialog.inputs import is_valid_phone, match_number_to_grid, normalize_phone, resolve_choice
from dialog.keyboards import confirm_cancel_row
from dialog.pagination import DEFAULT_ITEMS_PER_PAGE, paginated_rows
from models.schemas import DeepLinkData, InlineButton, Platform, StepResult
from workflows.common import escape_for, resolve_user, telegram_id
from workflows.ids import WorkflowId
from workflows.services import AuthService, CrmService, School, SchoolDirectory, User

logger = structlog.get_logger()


class OnboardingStep(str, Enum):
    HELLO = "hello"
    CHOOSE_PHONE = "choose_phone"
    REQUEST_PHONE = "request_phone"
    CHECK_USER = "check_user"
    REQUEST_NAME = "request_name"
    CONFIRM_DATA = "confirm_data"
    PROCESS_DEEP_LINK = "process_deep_link"
    SELECT_SCHOOL = "select_school"
    DONE = "done"


class OnboardingData(BaseModel):
    phone: str = ""
    wa_phone: str = ""
    name: str = ""
    user_exists: bool = False
    user_uuid: str = ""
    deep_link: Optional[DeepLinkData] = None
    school_name: str = ""


GREETING_TEXT = (
    "Привіт! 🖤\nДля швидкої перевірки в системі, будь ласка, надайте свій номер "
    "телефону у міжнародному форматі, починаючи з +380... 📱"
)
SCHOOL_GREETING_TEXT = (
    "Привіт! Вітаємо із завершення курсу 🖤\nВпевнені, що твої знання та наш матеріал стануть "
    "кроком до ще більших можливостей!\n\nНадайте свій номер телефону у міжнародному форматі, "
    "починаючи з +380... 📱"
)
INVALID_PHONE_TEXT = "❌ Невірний формат номера телефону. Спробуйте ще раз (наприклад +380XXXXXXXXX):"
SELECT_SCHOOL_TEXT = "Розкажи, будь ласка, з якої школи ти дізнався/дізналася про нас 🖤\n\nОберіть школу:"
SCHOOL_WELCOME_TEXT = (
    "Вітаємо, {name}!\n\nОтримай -15% на перше замовлення з промо-кодом {promo} 🖤\n"
    "Скористайся протягом 14 днів на сайті 👉 riornails.com\n\n"
    "P.S. Твоя особиста знижка -7% вже активна, і з часом може стати ще більшою ✨"
)


async def _link_user(user: User, platform: str, user_id: str, tg_id: int,
                     crm: Optional[CrmService]) -> bool:
    """Attach platform ids and a CRM contact to ``user``. True when changed."""
    changed = False
    if platform == Platform.INSTAGRAM.value and not user.instagram_id:
        user.instagram_id = user_id
        changed = True
    if platform == Platform.TELEGRAM.value and not user.telegram_id and tg_id:
        user.telegram_id = tg_id
        changed = True
    if not user.crm_id and crm is not None:
        try:
            crm_id = await crm.create_contact(user)
        except Exception as e:
            logger.warning("crm_contact_create_failed", user_uuid=user.uuid, error=str(e))
        else:
            if crm_id:
                user.crm_id = crm_id
                changed = True
    return changed


# ══════════════════════════════════════════════════════════════
#  PHONE
# ══════════════════════════════════════════════════════════════

class HelloStep(AutoStep):
    id = OnboardingStep.HELLO
    transitions = (OnboardingStep.CHOOSE_PHONE, OnboardingStep.REQUEST_PHONE)

    async def enter(self, state, messenger):
        link = state.view(OnboardingData).deep_link
        greeting = SCHOOL_GREETING_TEXT if link is not None and link.is_school else GREETING_TEXT
        await messenger.send_text(state.chat_id, greeting)

        # WhatsApp already knows the number: offer it
        if state.platform == Platform.WHATSAPP.value:
            wa_phone = normalize_phone(state.user_id)
            if is_valid_phone(wa_phone):
                return StepResult.go(OnboardingStep.CHOOSE_PHONE, wa_phone=wa_phone)
        return StepResult.go(OnboardingStep.REQUEST_PHONE)


class ChoosePhoneStep(Step):
    id = OnboardingStep.CHOOSE_PHONE
    transitions = (OnboardingStep.CHECK_USER, OnboardingStep.REQUEST_PHONE)

    @staticmethod
    def _buttons(wa_phone: str) -> list[InlineButton]:
        return [
            InlineButton(text=f"📱 Використати {wa_phone}", data=build_callback(ACTION_SELECT, "wa_phone")),
            InlineButton(text="✏️ Ввести інший номер", data=build_callback(ACTION_SELECT, "manual")),
        ]

    async def enter(self, state, messenger):
        await messenger.send_inline_options(
            state.chat_id,
            "Бажаєте використати номер телефону з WhatsApp або ввести інший?",
            self._buttons(state.get_str("wa_phone")),
        )
        return StepResult.stay()

    async def handle_input(self, state, messenger, user_input):
        wa_phone = state.get_str("wa_phone")
        choice = selected_id(parse_callback(resolve_choice(user_input, self._buttons(wa_phone))))
        if choice == "wa_phone":
            await messenger.send_text(state.chat_id, f"✅ Номер телефону: {wa_phone}")
            return StepResult.go(OnboardingStep.CHECK_USER, phone=wa_phone)
        if choice == "manual":
            return StepResult.go(OnboardingStep.REQUEST_PHONE)
        return StepResult.stay()


class RequestPhoneStep(Step):
    id = OnboardingStep.REQUEST_PHONE
    transitions = (OnboardingStep.CHECK_USER,)

    async def enter(self, state, messenger):
        if state.platform == Platform.TELEGRAM.value:
            await messenger.send_contact_request(
                state.chat_id,
                "Натисніть кнопку нижче, щоб поділитися номером телефону:",
                "📱 Поділитися номером телефону",
            )
        else:
            await messenger.send_text(state.chat_id, "Введіть номер телефону (наприклад +380XXXXXXXXX):")
        return StepResult.stay()

    async def handle_input(self, state, messenger, user_input):
        text = user_input.phone or user_input.text.strip()
        if not is_valid_phone(text):
            await messenger.send_text(state.chat_id, INVALID_PHONE_TEXT)
            return StepResult.stay()

        phone = normalize_phone(text)
        await messenger.send_text(state.chat_id, f"✅ Номер телефону: {phone}")
        return StepResult.go(OnboardingStep.CHECK_USER, phone=phone)


# ══════════════════════════════════════════════════════════════
#  IDENTITY
# ══════════════════════════════════════════════════════════════

class CheckUserStep(Step):
    """Known user → skip registration; otherwise ask for a name."""

    id = OnboardingStep.CHECK_USER
    transitions = (OnboardingStep.PROCESS_DEEP_LINK, OnboardingStep.REQUEST_NAME)

    def __init__(self, auth: AuthService, crm: Optional[CrmService] = None):
        self.auth = auth
        self.crm = crm

    async def enter(self, state, messenger):
        tg_id = telegram_id(state)
        user = await self.auth.find_user(phone=state.get_str("phone"), telegram_id=tg_id)

        if user is not None and user.name:
            if await _link_user(user, state.platform, state.user_id, tg_id, self.crm):
                await self.auth.update_user(user)
            logger.info("onboarding_user_recognised",
                        platform=state.platform, user_id=state.user_id, user_uuid=user.uuid)
            return StepResult.go(
                OnboardingStep.PROCESS_DEEP_LINK,
                user_exists=True, user_uuid=user.uuid, name=user.name,
            )

        return StepResult.go(OnboardingStep.REQUEST_NAME, user_exists=False)

    async def handle_input(self, state, messenger, user_input):
        # Parked here only if the lookup failed last time; try again
        return await self.enter(state, messenger)


class RequestNameStep(Step):
    id = OnboardingStep.REQUEST_NAME
    transitions = (OnboardingStep.CONFIRM_DATA,)

    async def enter(self, state, messenger):
        await messenger.send_text(state.chat_id, "Будь ласка, залиште ваші ім'я та прізвище для знайомства 😎")
        return StepResult.stay()

    async def handle_input(self, state, messenger, user_input):
        name = user_input.text.strip()
        if len(name) < 2:
            await messenger.send_text(state.chat_id, "Будь ласка, введіть коректне ім'я (мінімум 2 символи).")
            return StepResult.stay()
        return StepResult.go(OnboardingStep.CONFIRM_DATA, name=name)


class ConfirmDataStep(Step):
    id = OnboardingStep.CONFIRM_DATA
    transitions = (OnboardingStep.REQUEST_NAME, OnboardingStep.PROCESS_DEEP_LINK)

    BUTTONS = confirm_cancel_row("✅ Так", "❌ Ні, змінити")

    def __init__(self, auth: AuthService, crm: Optional[CrmService] = None):
        self.auth = auth
        self.crm = crm

    async def enter(self, state, messenger):
        text = (
            f"📋 Перевірте дані:\n\n👤 Ім'я: {escape_for(state.platform, state.get_str('name'))}\n"
            f"📱 Телефон: {state.get_str('phone')}\n\nВсе вірно?"
        )
        await messenger.send_inline_options(state.chat_id, text, self.BUTTONS)
        return StepResult.stay()

    async def handle_input(self, state, messenger, user_input):
        cb = parse_callback(resolve_choice(user_input, self.BUTTONS))
        if is_cancel(cb):
            return StepResult.go(OnboardingStep.REQUEST_NAME)
        if not is_confirm(cb):
            return StepResult.stay()

        name = state.get_str("name")
        tg_id = telegram_id(state)
        try:
            user = await self.auth.register_user(name, state.get_str("phone"), tg_id)
        except Exception as e:
            await messenger.send_text(state.chat_id, "Виникла помилка при збереженні даних. Спробуйте пізніше.")
            return StepResult.fail(e)

        await _link_user(user, state.platform, state.user_id, tg_id, self.crm)
        user.name = name
        await self.auth.update_user(user)
        logger.info("onboarding_user_registered",
                    platform=state.platform, user_id=state.user_id, user_uuid=user.uuid)

        await messenger.send_text(state.chat_id, "✅ Дані збережено!")
        return StepResult.go(OnboardingStep.PROCESS_DEEP_LINK, user_uuid=user.uuid)


# ══════════════════════════════════════════════════════════════
#  INVITE LINK
# ══════════════════════════════════════════════════════════════

class _SchoolMixin:
    auth: AuthService
    crm: Optional[CrmService]

    async def _school_chosen(self, state, messenger, school: School) -> StepResult:
        promo = "<b>DARKSCHOOL</b>" if state.platform == Platform.TELEGRAM.value else "*DARKSCHOOL*"
        await messenger.send_text(state.chat_id, SCHOOL_WELCOME_TEXT.format(
            name=escape_for(state.platform, school.name), promo=promo,
        ))

        if self.crm is not None:
            user = await resolve_user(state, self.auth)
            if user is not None and user.crm_id:
                try:
                    await self.crm.update_contact_school(user.crm_id, school.name)
                except Exception as e:
                    logger.warning("crm_school_update_failed", crm_id=user.crm_id, error=str(e))

        logger.info("onboarding_school_selected",
                    platform=state.platform, user_id=state.user_id, school=school.name)
        return StepResult.go(OnboardingStep.DONE, school_name=school.name)


class ProcessDeepLinkStep(_SchoolMixin, AutoStep):
    """
    ``school_<code>`` resolves the school directly; the generic referral
    link ``dl`` asks the user to pick one; anything else finishes.
    """

    id = OnboardingStep.PROCESS_DEEP_LINK
    transitions = (OnboardingStep.SELECT_SCHOOL, OnboardingStep.DONE)

    def __init__(self, auth: AuthService, schools: SchoolDirectory, crm: Optional[CrmService] = None):
        self.auth = auth
        self.schools = schools
        self.crm = crm

    async def enter(self, state, messenger):
        link = state.view(OnboardingData).deep_link
        if link is None or link.is_empty:
            return StepResult.go(OnboardingStep.DONE)
        logger.info("onboarding_deep_link",
                    platform=state.platform, user_id=state.user_id, link=link.full_code)

        if link.is_school and link.has_code:
            school = await self.schools.find_by_code(link.code)
            if school is not None and school.active:
                return await self._school_chosen(state, messenger, school)
            logger.warning("deep_link_school_unknown", code=link.code, user_id=state.user_id)
            return StepResult.go(OnboardingStep.DONE)

        if link.type == TYPE_REFERRAL:
            return StepResult.go(OnboardingStep.SELECT_SCHOOL)
        return StepResult.go(OnboardingStep.DONE)


class SelectSchoolStep(_SchoolMixin, Step):
    """Paginated school picker; page flips edit the grid in place."""

    id = OnboardingStep.SELECT_SCHOOL
    transitions = (OnboardingStep.DONE,)

    def __init__(self, auth: AuthService, schools: SchoolDirectory,
                 crm: Optional[CrmService] = None, items_per_page: int = DEFAULT_ITEMS_PER_PAGE):
        self.auth = auth
        self.schools = schools
        self.crm = crm
        self.items_per_page = items_per_page

    async def _active(self) -> list[School]:
        return [s for s in await self.schools.active_schools() if s.active]

    def _rows(self, schools: list[School], page: int):
        return paginated_rows([(s.id, s.name) for s in schools], page, self.items_per_page)

    @staticmethod
    def _flip(state, page: int) -> bool:
        """Move to ``page``; False when it is out of range or already shown."""
        current = state.pagination.current_page
        if page == current + 1:
            return state.next_page()
        if page == current - 1:
            return state.prev_page()
        if page == current or not 1 <= page <= state.pagination.total_pages:
            return False
        state.pagination.current_page = page
        return True

    async def enter(self, state, messenger):
        schools = await self._active()
        if not schools:
            return StepResult.go(OnboardingStep.DONE)
        state.init_pagination(len(schools), self.items_per_page)
        await messenger.send_inline_grid(state.chat_id, SELECT_SCHOOL_TEXT, self._rows(schools, 1))
        return StepResult.stay()

    async def handle_input(self, state, messenger, user_input):
        schools = await self._active()
        if not schools:
            return StepResult.go(OnboardingStep.DONE)
        if state.pagination is None:
            state.init_pagination(len(schools), self.items_per_page)

        data = user_input.callback_data or match_number_to_grid(
            user_input.text, self._rows(schools, state.pagination.current_page),
        )
        cb = parse_callback(data)
        if cb is None or is_noop(cb):
            return StepResult.stay()

        if is_page(cb):
            if not self._flip(state, page_number(cb)):
                return StepResult.stay()
            rows = self._rows(schools, state.pagination.current_page)
            if user_input.message_id:
                await messenger.edit_inline_grid(state.chat_id, user_input.message_id, "Оберіть школу:", rows)
            else:
                await messenger.send_inline_grid(state.chat_id, "Оберіть школу:", rows)
            return StepResult.stay()

        if is_select(cb):
            school = next((s for s in schools if s.id == selected_id(cb)), None)
            if school is not None:
                return await self._school_chosen(state, messenger, school)
        return StepResult.stay()


class DoneStep(AutoStep):
    id = OnboardingStep.DONE

    async def enter(self, state, messenger):
        name = escape_for(state.platform, state.get_str("name"))
        text = "цей чат-бот для того, щоб зробити нашу взаємодію ще зручнішою!"
        await messenger.send_text(state.chat_id, f"{name}, {text}" if name else text.capitalize())
        return StepResult.finish(next_workflow=WorkflowId.MAINMENU)

    async def handle_input(self, state, messenger, user_input):
        # Parked here only if the farewell failed to send; try again
        return await self.enter(state, messenger)


# ══════════════════════════════════════════════════════════════
#  WORKFLOW
# ══════════════════════════════════════════════════════════════

class OnboardingWorkflow(Workflow):
    id = WorkflowId.ONBOARDING
    initial_step = OnboardingStep.HELLO
    chains_to = (WorkflowId.MAINMENU,)
    data_model = OnboardingData

    def __init__(self, auth: AuthService, schools: SchoolDirectory,
                 crm: Optional[CrmService] = None, items_per_page: int = DEFAULT_ITEMS_PER_PAGE):
        super().__init__([
            HelloStep(),
            ChoosePhoneStep(),
            RequestPhoneStep(),
            CheckUserStep(auth, crm),
            RequestNameStep(),
            ConfirmDataStep(auth, crm),
            ProcessDeepLinkStep(auth, schools, crm),
            SelectSchoolStep(auth, schools, crm, items_per_page),
            DoneStep(),
        ])
