"""Workflow stages and transitions.

State Machine Diagram:

    ┌───────────┐  FORWARD   ┌──────────────┐
    │ ITEM_EDIT │───────────►│ ITEM_APPROVE │◄─────────────┐
    └───────────┘◄───────────└──────┬───────┘              │
                    REJECT          │ APPROVE              │ BACK
                              ┌─────▼─────┐  FORWARD  ┌────┴─────────┐
                              │ PLAN_EDIT │──────────►│ PLAN_APPROVE │◄───────┐
                              └───────────┘◄──────────└──────┬───────┘        │
                                              REJECT         │ APPROVE        │ BACK
                                                    ┌────────▼─────┐ FORWARD ┌┴────────────────┐
                                                    │ PRODUCT_EDIT │────────►│ PRODUCT_APPROVE │
                                                    └──────────────┘◄────────└───────┬─────────┘
                                                                      REJECT         │ APPROVE
                                                                              ┌──────▼────┐ MIGRATE ┌──────┐
                                                                              │ MIGRATION │────────►│ DONE │
                                                                              └───────────┘         └──────┘

Items are edited first but numbered stage 3; products are edited last and
numbered stage 1.
"""

from enum import Enum
from typing import Set, Dict, Optional, NamedTuple, FrozenSet

from approvalflow.core.rbac.permissions import is_valid_permission
from approvalflow.core.rbac.roles import Role


class EntityType(str, Enum):
    """Reference data entity types, in workflow order."""

    ITEM = "item"
    PLAN = "plan"
    PRODUCT = "product"

    @property
    def plural(self) -> str:
        return f"{self.value}s"


class Stage(str, Enum):
    """Stages of the approval workflow."""

    ITEM_EDIT = "ITEM_EDIT"
    ITEM_APPROVE = "ITEM_APPROVE"
    PLAN_EDIT = "PLAN_EDIT"
    PLAN_APPROVE = "PLAN_APPROVE"
    PRODUCT_EDIT = "PRODUCT_EDIT"
    PRODUCT_APPROVE = "PRODUCT_APPROVE"
    MIGRATION = "MIGRATION"
    DONE = "DONE"


class StageTransition(str, Enum):
    """Actions that move a process between stages."""

    FORWARD = "FORWARD"    # Maker submits stage data       X_EDIT -> X_APPROVE
    BACK = "BACK"          # Maker navigates back           X_EDIT -> previous X_APPROVE
    APPROVE = "APPROVE"    # Checker approves the sheet     X_APPROVE -> next stage
    REJECT = "REJECT"      # Checker returns to the maker   X_APPROVE -> X_EDIT
    MIGRATE = "MIGRATE"    # Production copy succeeded      MIGRATION -> DONE


class Decision(str, Enum):
    """Values written to the decision variables read by the workflow engine."""

    APPROVE = "APPROVE"
    REJECT = "REJECT"
    BACK = "BACK"
    FORWARD = "FORWARD"


class Guard(str, Enum):
    """Facts that must hold before a transition is allowed."""

    ROWS_VALID = "rows_valid"
    ROWS_FULLY_APPROVED = "rows_fully_approved"
    SHEET_APPROVED = "sheet_approved"
    ALL_SHEETS_APPROVED = "all_sheets_approved"


class TransitionRule(NamedTuple):
    """Defines a valid stage transition."""
    from_stage: Stage
    to_stage: Stage
    transition: StageTransition
    requires_permission: Optional[str] = None
    requires_comment: bool = False
    guards: FrozenSet[Guard] = frozenset()


_APPROVE_GUARDS = frozenset([Guard.ROWS_FULLY_APPROVED, Guard.SHEET_APPROVED])

TRANSITION_RULES: list[TransitionRule] = [
    # Items (stage 3)
    TransitionRule(Stage.ITEM_EDIT, Stage.ITEM_APPROVE, StageTransition.FORWARD,
                   "stages:submit", guards=frozenset([Guard.ROWS_VALID])),
    TransitionRule(Stage.ITEM_APPROVE, Stage.PLAN_EDIT, StageTransition.APPROVE,
                   "stages:approve", guards=_APPROVE_GUARDS),
    TransitionRule(Stage.ITEM_APPROVE, Stage.ITEM_EDIT, StageTransition.REJECT,
                   "stages:reject", requires_comment=True),

    # Plans (stage 2)
    TransitionRule(Stage.PLAN_EDIT, Stage.PLAN_APPROVE, StageTransition.FORWARD,
                   "stages:submit", guards=frozenset([Guard.ROWS_VALID])),
    TransitionRule(Stage.PLAN_EDIT, Stage.ITEM_APPROVE, StageTransition.BACK,
                   "stages:back"),
    TransitionRule(Stage.PLAN_APPROVE, Stage.PRODUCT_EDIT, StageTransition.APPROVE,
                   "stages:approve", guards=_APPROVE_GUARDS),
    TransitionRule(Stage.PLAN_APPROVE, Stage.PLAN_EDIT, StageTransition.REJECT,
                   "stages:reject", requires_comment=True),

    # Products (stage 1)
    TransitionRule(Stage.PRODUCT_EDIT, Stage.PRODUCT_APPROVE, StageTransition.FORWARD,
                   "stages:submit", guards=frozenset([Guard.ROWS_VALID])),
    TransitionRule(Stage.PRODUCT_EDIT, Stage.PLAN_APPROVE, StageTransition.BACK,
                   "stages:back"),
    TransitionRule(Stage.PRODUCT_APPROVE, Stage.MIGRATION, StageTransition.APPROVE,
                   "stages:approve", guards=_APPROVE_GUARDS | {Guard.ALL_SHEETS_APPROVED}),
    TransitionRule(Stage.PRODUCT_APPROVE, Stage.PRODUCT_EDIT, StageTransition.REJECT,
                   "stages:reject", requires_comment=True),

    # Production migration
    TransitionRule(Stage.MIGRATION, Stage.DONE, StageTransition.MIGRATE,
                   "migration:execute"),
]

# Lookup tables
VALID_TRANSITIONS: Dict[Stage, Set[StageTransition]] = {}
TRANSITION_TARGETS: Dict[tuple[Stage, StageTransition], TransitionRule] = {}

for rule in TRANSITION_RULES:
    if rule.requires_permission and not is_valid_permission(rule.requires_permission):
        raise ValueError(
            f"Transition {rule.from_stage.value} -> {rule.to_stage.value} requires "
            f"unknown permission {rule.requires_permission!r}"
        )
    VALID_TRANSITIONS.setdefault(rule.from_stage, set()).add(rule.transition)
    TRANSITION_TARGETS[(rule.from_stage, rule.transition)] = rule


INITIAL_STAGE = Stage.ITEM_EDIT

TERMINAL_STAGES: Set[Stage] = {Stage.DONE}

EDIT_STAGES: Dict[EntityType, Stage] = {
    EntityType.ITEM: Stage.ITEM_EDIT,
    EntityType.PLAN: Stage.PLAN_EDIT,
    EntityType.PRODUCT: Stage.PRODUCT_EDIT,
}

APPROVE_STAGES: Dict[EntityType, Stage] = {
    EntityType.ITEM: Stage.ITEM_APPROVE,
    EntityType.PLAN: Stage.PLAN_APPROVE,
    EntityType.PRODUCT: Stage.PRODUCT_APPROVE,
}

STAGE_ENTITIES: Dict[Stage, EntityType] = {
    **{stage: entity for entity, stage in EDIT_STAGES.items()},
    **{stage: entity for entity, stage in APPROVE_STAGES.items()},
}

DECISION_VARIABLES: Dict[EntityType, str] = {
    EntityType.ITEM: "itemDecision",
    EntityType.PLAN: "planDecision",
    EntityType.PRODUCT: "productDecision",
}

STAGE_NUMBERS: Dict[EntityType, int] = {
    EntityType.ITEM: 3,
    EntityType.PLAN: 2,
    EntityType.PRODUCT: 1,
}


def can_transition(from_stage: Stage, transition: StageTransition) -> bool:
    """Check if a transition is valid from the given stage."""
    return transition in VALID_TRANSITIONS.get(from_stage, set())


def get_transition_rule(from_stage: Stage, transition: StageTransition) -> Optional[TransitionRule]:
    """Get the transition rule for a stage/action combination."""
    return TRANSITION_TARGETS.get((from_stage, transition))


def get_target_stage(from_stage: Stage, transition: StageTransition) -> Optional[Stage]:
    """Get the target stage for a transition."""
    rule = get_transition_rule(from_stage, transition)
    return rule.to_stage if rule else None


def entity_for_stage(stage: Stage) -> Optional[EntityType]:
    """Entity type edited or approved in a stage, None for MIGRATION/DONE."""
    return STAGE_ENTITIES.get(stage)


def is_edit_stage(stage: Stage) -> bool:
    return stage in EDIT_STAGES.values()


def is_approve_stage(stage: Stage) -> bool:
    return stage in APPROVE_STAGES.values()


def candidate_group_for(stage: Stage) -> Role:
    """Role whose members may pick up the task of a stage."""
    if is_edit_stage(stage):
        return Role.MAKER
    if is_approve_stage(stage):
        return Role.CHECKER
    return Role.ADMIN


def task_definition_key(stage: Stage) -> str:
    """Engine-style task key, e.g. ``itemEdit`` or ``dataMigration``."""
    entity = entity_for_stage(stage)
    if entity is None:
        return "dataMigration"
    return f"{entity.value}{'Edit' if is_edit_stage(stage) else 'Approve'}"


def task_name(stage: Stage) -> str:
    """Human readable task name, e.g. ``Stage 3: Edit Items``."""
    entity = entity_for_stage(stage)
    if entity is None:
        return "Data Migration"
    verb = "Edit" if is_edit_stage(stage) else "Approve"
    return f"Stage {STAGE_NUMBERS[entity]}: {verb} {entity.plural.capitalize()}"
