"""Stage workflow for the item -> plan -> product approval process."""

from .states import (
    EntityType,
    Stage,
    StageTransition,
    Decision,
    Guard,
    VALID_TRANSITIONS,
    DECISION_VARIABLES,
)
from .gate import StageGate, TransitionOutcome

__all__ = [
    "EntityType",
    "Stage",
    "StageTransition",
    "Decision",
    "Guard",
    "VALID_TRANSITIONS",
    "DECISION_VARIABLES",
    "StageGate",
    "TransitionOutcome",
]
