"""
Dialog engine — steps, workflows, the registry and the engine that drives them.

Quick start:
  from dialog import WorkflowEngine, WorkflowRegistry
  engine = WorkflowEngine(WorkflowRegistry([MyWorkflow()], default_workflow="my"), store)
  await engine.handle_message(messenger, "telegram", "42", "42", "hi")
"""
from dialog.base import AutoStep, Step, Workflow, WorkflowRegistry
from dialog.engine import KeyedLock, WorkflowEngine
from dialog.errors import (
    DialogError,
    StepError,
    StepNotFoundError,
    TransitionLimitError,
    WorkflowDefinitionError,
    WorkflowNotFoundError,
)

__all__ = [
    "Step", "AutoStep", "Workflow", "WorkflowRegistry",
    "WorkflowEngine", "KeyedLock",
    "DialogError", "WorkflowNotFoundError", "StepNotFoundError",
    "TransitionLimitError", "WorkflowDefinitionError", "StepError",
]
