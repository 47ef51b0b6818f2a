"""
Shipped workflows — onboarding and the main menu.

Quick start:
  from workflows import build_registry
  registry = build_registry(auth, crm, ai, schools)
  engine = WorkflowEngine(registry, store)
"""
from typing import Optional

from config.settings import EngineConfig
from dialog.base import WorkflowRegistry
from workflows.ids import WorkflowId
from workflows.mainmenu import MainMenuData, MainMenuStep, MainMenuWorkflow
from workflows.onboarding import OnboardingData, OnboardingStep, OnboardingWorkflow
from workflows.services import (
    AIService, AiAnswer, AuthService, CrmService, OrderDetail, School,
    SchoolDirectory, ServiceRating, User,
)


def build_registry(
    auth: AuthService,
    crm: CrmService,
    ai: AIService,
    schools: SchoolDirectory,
    settings: Optional[EngineConfig] = None,
) -> WorkflowRegistry:
    """Wire the shipped workflows to their collaborators and validate them."""
    settings = settings or EngineConfig()
    return WorkflowRegistry(
        [
            OnboardingWorkflow(auth, schools, crm, items_per_page=settings.items_per_page),
            MainMenuWorkflow(auth, crm, ai),
        ],
        default_workflow=settings.default_workflow or WorkflowId.ONBOARDING,
    )


__all__ = [
    "build_registry", "WorkflowId",
    # Workflows
    "OnboardingWorkflow", "OnboardingStep", "OnboardingData",
    "MainMenuWorkflow", "MainMenuStep", "MainMenuData",
    # Collaborators
    "AuthService", "CrmService", "AIService", "SchoolDirectory",
    "User", "OrderDetail", "ServiceRating", "School", "AiAnswer",
]
