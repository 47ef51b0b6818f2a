"""Workflow identifiers shared by the shipped workflows."""
from __future__ import annotations

from enum import Enum


class WorkflowId(str, Enum):
    ONBOARDING = "onboarding"
    MAINMENU = "mainmenu"
