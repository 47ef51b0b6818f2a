"""
Workflow / Step contracts and the workflow registry.

A Workflow is a fixed set of Steps plus an initial step. Every step
declares which steps it may transition to, and every workflow declares
which workflows it may chain into; the registry checks both once at
construction so a typo fails at startup rather than on the first user
who hits it.
"""
from __future__ import annotations

import structlog
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, ClassVar, Iterable, Iterator, Optional

from pydantic import BaseModel

from dialog.errors import WorkflowDefinitionError, WorkflowNotFoundError
from models.schemas import ChatState, StepResult, UserInput, ident

if TYPE_CHECKING:
    from channels.base import Messenger

logger = structlog.get_logger()


# ══════════════════════════════════════════════════════════════
#  STEP
# ══════════════════════════════════════════════════════════════

class Step(ABC):
    """
    One stage of a dialog.

    ``enter`` runs when the user arrives at the step (send the prompt,
    or decide and move on for automatic steps). ``handle_input`` runs for
    every event while the user is parked here.
    """

    id: ClassVar[Any] = ""
    transitions: ClassVar[tuple[Any, ...]] = ()

    @property
    def step_id(self) -> str:
        return ident(self.id)

    @abstractmethod
    async def enter(self, state: ChatState, messenger: Messenger) -> StepResult:
        ...

    @abstractmethod
    async def handle_input(
        self, state: ChatState, messenger: Messenger, user_input: UserInput,
    ) -> StepResult:
        ...


class AutoStep(Step):
    """A step that decides in ``enter`` and ignores input."""

    async def handle_input(
        self, state: ChatState, messenger: Messenger, user_input: UserInput,
    ) -> StepResult:
        return StepResult()


# ══════════════════════════════════════════════════════════════
#  WORKFLOW
# ══════════════════════════════════════════════════════════════

class Workflow:
    """
    A named, fixed set of steps. Subclasses set ``id``, ``initial_step``,
    optionally ``chains_to`` and ``data_model``, and pass their step
    instances (with collaborators already injected) to ``__init__``.
    """

    id: ClassVar[Any] = ""
    initial_step: ClassVar[Any] = ""
    chains_to: ClassVar[tuple[Any, ...]] = ()
    data_model: ClassVar[Optional[type[BaseModel]]] = None

    def __init__(self, steps: Iterable[Step]):
        self._step_list: tuple[Step, ...] = tuple(steps)
        self._steps: dict[str, Step] = {s.step_id: s for s in self._step_list}

    @property
    def workflow_id(self) -> str:
        return ident(self.id)

    def get_step(self, step_id: str) -> Optional[Step]:
        return self._steps.get(ident(step_id))

    def steps(self) -> tuple[Step, ...]:
        return self._step_list

    def validate(self) -> list[str]:
        """Structural checks local to this workflow. Returns error messages."""
        errors = []
        if not self.workflow_id:
            errors.append("workflow id is empty")

        seen: set[str] = set()
        for step in self._step_list:
            if not step.step_id:
                errors.append(f"step {type(step).__name__} has no id")
            elif step.step_id in seen:
                errors.append(f"duplicate step id '{step.step_id}'")
            seen.add(step.step_id)

        if ident(self.initial_step) not in self._steps:
            errors.append(f"initial_step '{ident(self.initial_step)}' not in steps")

        for step in self._step_list:
            for target in step.transitions:
                if ident(target) not in self._steps:
                    errors.append(
                        f"step '{step.step_id}' transitions to unknown step '{ident(target)}'"
                    )
        return errors


# ══════════════════════════════════════════════════════════════
#  REGISTRY
# ══════════════════════════════════════════════════════════════

class WorkflowRegistry(Mapping):
    """Read-only mapping of workflow id → Workflow, validated on construction."""

    def __init__(self, workflows: Iterable[Workflow], default_workflow: Any = "onboarding"):
        workflows = list(workflows)
        self._workflows: dict[str, Workflow] = {}
        self._default = ident(default_workflow)

        errors_by_workflow: dict[str, list[str]] = {}
        for wf in workflows:
            errs = wf.validate()
            if wf.workflow_id in self._workflows:
                errs.append(f"duplicate workflow id '{wf.workflow_id}'")
            self._workflows.setdefault(wf.workflow_id, wf)
            if errs:
                errors_by_workflow.setdefault(wf.workflow_id, []).extend(errs)

        for wf in workflows:
            for target in wf.chains_to:
                if ident(target) not in self._workflows:
                    errors_by_workflow.setdefault(wf.workflow_id, []).append(
                        f"chains to unknown workflow '{ident(target)}'"
                    )

        if self._default not in self._workflows:
            errors_by_workflow.setdefault(self._default, []).append(
                f"default workflow '{self._default}' is not registered"
            )

        if errors_by_workflow:
            workflow_id, errors = next(iter(errors_by_workflow.items()))
            logger.error("invalid_workflow_definitions", errors=errors_by_workflow)
            raise WorkflowDefinitionError(workflow_id, errors)

        logger.info("workflows_registered",
                    workflows=list(self._workflows),
                    default=self._default)

    def __getitem__(self, workflow_id: str) -> Workflow:
        return self._workflows[ident(workflow_id)]

    def __contains__(self, workflow_id: object) -> bool:
        return ident(workflow_id) in self._workflows

    def __iter__(self) -> Iterator[str]:
        return iter(self._workflows)

    def __len__(self) -> int:
        return len(self._workflows)

    def get_workflow(self, workflow_id: str) -> Workflow:
        """Like ``registry[id]`` but raises WorkflowNotFoundError."""
        wf = self._workflows.get(ident(workflow_id))
        if wf is None:
            raise WorkflowNotFoundError(ident(workflow_id))
        return wf

    def ids(self) -> list[str]:
        return list(self._workflows)

    @property
    def default_workflow(self) -> str:
        return self._default
