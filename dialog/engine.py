"""
Workflow Engine — drives users through workflow steps.

One pipeline serves all inbound event kinds:

  load state ─┬─ none → start default workflow
              └─ step.handle_input → _process_result → [step.enter …] → save

``_process_result`` merges the step's updates, follows ``next_step``
through as many automatic ``enter`` calls as needed (bounded by
``max_transitions``), and handles completion: delete the row, or chain
into ``data["next_workflow"]`` within the same call.

Events for the same (platform, user_id) are serialised by a keyed
asyncio lock so concurrent load → mutate → save sequences cannot
overwrite each other.
"""
from __future__ import annotations

import asyncio
import structlog
from contextlib import asynccontextmanager, nullcontext
from typing import TYPE_CHECKING, Any, AsyncIterator, Hashable, Optional

from config.settings import EngineConfig
from dialog.base import Step, Workflow, WorkflowRegistry
from dialog.errors import (
    StepNotFoundError, TransitionLimitError, WorkflowDefinitionError, WorkflowNotFoundError,
)
from models.schemas import ChatState, DeepLinkData, StepResult, UserInput, ident

if TYPE_CHECKING:
    from channels.base import Messenger
    from database.store_base import BaseStateStore

logger = structlog.get_logger()

NEXT_WORKFLOW_KEY = "next_workflow"
DEEP_LINK_KEY = "deep_link"


# ══════════════════════════════════════════════════════════════
#  PER-USER LOCK
# ══════════════════════════════════════════════════════════════

class KeyedLock:
    """
    One asyncio.Lock per key, created on demand and dropped once nobody
    holds or waits on it.
    """

    def __init__(self):
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._waiters: dict[Hashable, int] = {}

    @asynccontextmanager
    async def acquire(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


# ══════════════════════════════════════════════════════════════
#  ENGINE
# ══════════════════════════════════════════════════════════════

class WorkflowEngine:
    """Orchestrates workflow execution for every platform."""

    def __init__(
        self,
        registry: WorkflowRegistry,
        storage: BaseStateStore,
        settings: Optional[EngineConfig] = None,
    ):
        settings = settings or EngineConfig()
        self.registry = registry
        self.storage = storage
        self.max_transitions = settings.max_transitions
        self.default_workflow = ident(settings.default_workflow) or registry.default_workflow
        if self.default_workflow not in registry:
            logger.error("default_workflow_not_registered",
                         workflow_id=self.default_workflow, registered=registry.ids())
            raise WorkflowDefinitionError(
                self.default_workflow, ["default workflow is not registered"],
            )
        self._serialize = settings.serialize_per_user
        self._locks = KeyedLock()

    def _user_scope(self, platform: str, user_id: str):
        if not self._serialize:
            return nullcontext()
        return self._locks.acquire((platform, user_id))

    # ── Entry points ──────────────────────────────────────────

    async def handle_message(
        self, messenger: Messenger, platform: str, user_id: str, chat_id: str, text: str,
    ) -> None:
        await self._dispatch(messenger, platform, user_id, chat_id, UserInput(text=text))

    async def handle_callback(
        self, messenger: Messenger, platform: str, user_id: str, chat_id: str,
        callback_data: str, message_id: str = "",
    ) -> None:
        await self._dispatch(
            messenger, platform, user_id, chat_id,
            UserInput(callback_data=callback_data, message_id=message_id),
        )

    async def handle_contact(
        self, messenger: Messenger, platform: str, user_id: str, chat_id: str, phone: str,
    ) -> None:
        await self._dispatch(messenger, platform, user_id, chat_id, UserInput(phone=phone))

    async def start_workflow(
        self,
        messenger: Messenger,
        platform: str,
        user_id: str,
        chat_id: str,
        workflow_id: Optional[str] = None,
        initial_data: Optional[dict[str, Any]] = None,
        deep_link: Optional[DeepLinkData] = None,
    ) -> None:
        """
        Start ``workflow_id`` (default workflow when omitted) for the user,
        replacing whatever state they had.
        """
        data = dict(initial_data or {})
        if deep_link is not None and not deep_link.is_empty:
            data[DEEP_LINK_KEY] = deep_link.model_dump()
        async with self._user_scope(platform, user_id):
            await self._start_workflow(
                messenger, platform, user_id, chat_id,
                ident(workflow_id) or self.default_workflow, data,
            )

    # ── Operator helpers ──────────────────────────────────────

    async def get_state(self, platform: str, user_id: str) -> Optional[ChatState]:
        return await self.storage.load(platform, user_id)

    async def has_active_workflow(self, platform: str, user_id: str) -> bool:
        return await self.storage.exists(platform, user_id)

    async def clear_state(self, platform: str, user_id: str) -> None:
        async with self._user_scope(platform, user_id):
            await self.storage.delete(platform, user_id)
        logger.info("workflow_state_cleared", platform=platform, user_id=user_id)

    # ── Pipeline ──────────────────────────────────────────────

    async def _dispatch(
        self, messenger: Messenger, platform: str, user_id: str, chat_id: str,
        user_input: UserInput,
    ) -> None:
        async with self._user_scope(platform, user_id):
            state = await self.storage.load(platform, user_id)
            if state is None:
                logger.info("no_active_workflow",
                            platform=platform, user_id=user_id,
                            starting=self.default_workflow)
                await self._start_workflow(
                    messenger, platform, user_id, chat_id, self.default_workflow, {},
                )
                return

            workflow = self._resolve_workflow(state.workflow_id, state)
            step = self._resolve_step(workflow, state.current_step, state)

            result = await step.handle_input(state, messenger, user_input)
            await self._process_result(messenger, state, workflow, step, result)

    async def _start_workflow(
        self, messenger: Messenger, platform: str, user_id: str, chat_id: str,
        workflow_id: str, data: dict[str, Any],
    ) -> None:
        workflow = self._resolve_workflow(workflow_id)
        initial = ident(workflow.initial_step)
        state = ChatState(
            platform=platform,
            user_id=user_id,
            chat_id=chat_id,
            workflow_id=workflow.workflow_id,
            current_step=initial,
            data=data,
        )
        await self.storage.save(state)
        logger.info("workflow_started",
                    platform=platform, user_id=user_id,
                    workflow_id=workflow.workflow_id, step_id=initial)

        step = self._resolve_step(workflow, initial, state)
        result = await step.enter(state, messenger)
        await self._process_result(messenger, state, workflow, step, result)

    async def _process_result(
        self, messenger: Messenger, state: ChatState, workflow: Workflow,
        step: Step, result: StepResult,
    ) -> None:
        self._apply(state, step, result)
        if result.complete:
            await self._complete(messenger, state)
            return

        for _ in range(self.max_transitions):
            if not result.next_step or result.next_step == state.current_step:
                break
            self._check_declared(workflow, step, result.next_step)

            state.current_step = result.next_step
            await self.storage.save(state)
            step = self._resolve_step(workflow, state.current_step, state)

            logger.debug("step_entered",
                         platform=state.platform, user_id=state.user_id,
                         workflow_id=state.workflow_id, step_id=state.current_step)
            result = await step.enter(state, messenger)
            self._apply(state, step, result)
            if result.complete:
                await self._complete(messenger, state)
                return
        else:
            if result.next_step and result.next_step != state.current_step:
                await self.storage.save(state)
                logger.error("transition_limit_reached",
                             platform=state.platform, user_id=state.user_id,
                             workflow_id=state.workflow_id, step_id=state.current_step,
                             requested_step=result.next_step,
                             limit=self.max_transitions)
                raise TransitionLimitError(
                    state.workflow_id, state.current_step, self.max_transitions,
                )

        await self.storage.save(state)

    def _apply(self, state: ChatState, step: Step, result: StepResult) -> None:
        """Merge a step's updates into state. Raises the step's error instead."""
        if result.error is not None:
            logger.error("step_failed",
                         platform=state.platform, user_id=state.user_id,
                         workflow_id=state.workflow_id, step_id=step.step_id,
                         error=str(result.error))
            raise result.error
        state.merge_data(result.update_state)
        state.touch()

    async def _complete(self, messenger: Messenger, state: ChatState) -> None:
        next_workflow = state.get_str(NEXT_WORKFLOW_KEY)
        await self.storage.delete(state.platform, state.user_id)
        logger.info("workflow_completed",
                    platform=state.platform, user_id=state.user_id,
                    workflow_id=state.workflow_id, next_workflow=next_workflow or None)
        if next_workflow:
            workflow = self._resolve_workflow(state.workflow_id, state)
            if next_workflow not in {ident(w) for w in workflow.chains_to}:
                logger.warning("undeclared_chain",
                               workflow_id=state.workflow_id, next_workflow=next_workflow)
            await self._start_workflow(
                messenger, state.platform, state.user_id, state.chat_id, next_workflow, {},
            )

    # ── Lookups ───────────────────────────────────────────────

    def _resolve_workflow(self, workflow_id: str, state: Optional[ChatState] = None) -> Workflow:
        try:
            return self.registry.get_workflow(workflow_id)
        except WorkflowNotFoundError:
            logger.error("workflow_not_found",
                         workflow_id=workflow_id,
                         platform=state.platform if state else None,
                         user_id=state.user_id if state else None)
            raise

    def _resolve_step(self, workflow: Workflow, step_id: str, state: ChatState) -> Step:
        step = workflow.get_step(step_id)
        if step is None:
            logger.error("step_not_found",
                         workflow_id=workflow.workflow_id, step_id=step_id,
                         platform=state.platform, user_id=state.user_id)
            raise StepNotFoundError(workflow.workflow_id, step_id)
        return step

    @staticmethod
    def _check_declared(workflow: Workflow, step: Step, next_step: str) -> None:
        if next_step not in {ident(t) for t in step.transitions}:
            logger.warning("undeclared_transition",
                           workflow_id=workflow.workflow_id,
                           step_id=step.step_id, next_step=next_step)
