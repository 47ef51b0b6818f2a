"""
Dialog errors — raised by the registry and the engine.

Step-level failures are reported through ``StepResult.error`` and re-raised
by the engine; the types below cover lookup failures, definition problems and
the transition cap.
"""
from __future__ import annotations


class DialogError(Exception):
    """Base exception for the dialog engine."""


class WorkflowNotFoundError(DialogError):
    def __init__(self, workflow_id: str):
        self.workflow_id = workflow_id
        super().__init__(f"Workflow not found: {workflow_id}")


class StepNotFoundError(DialogError):
    def __init__(self, workflow_id: str, step_id: str):
        self.workflow_id = workflow_id
        self.step_id = step_id
        super().__init__(f"Step not found: {workflow_id}/{step_id}")


class TransitionLimitError(DialogError):
    """An automatic transition chain exceeded ``max_transitions``."""

    def __init__(self, workflow_id: str, step_id: str, limit: int):
        self.workflow_id = workflow_id
        self.step_id = step_id
        self.limit = limit
        super().__init__(
            f"Transition limit ({limit}) reached in {workflow_id} at step {step_id}"
        )


class WorkflowDefinitionError(DialogError, ValueError):
    """A workflow failed validation at registration time."""

    def __init__(self, workflow_id: str, errors: list[str]):
        self.workflow_id = workflow_id
        self.errors = errors
        super().__init__(f"Invalid workflow '{workflow_id}': {'; '.join(errors)}")


class StepError(DialogError):
    """Convenience error for steps that fail with a plain message."""
