"""Stage gate: the approval workflow state machine.

Validates a requested transition against the current stage, the caller's
permissions and the guard facts established by the sheet components, then
produces the decision variables the workflow engine routes on.
"""

from datetime import datetime
from typing import Optional, Dict, Any, Iterable, NamedTuple

from approvalflow.core.errors import (
    TransitionError,
    UnauthorizedTransitionError,
    RowValidationError,
    IncompleteApprovalError,
    IncompleteMigrationPrerequisiteError,
)
from approvalflow.core.rbac.checker import PermissionChecker
from .states import (
    Stage,
    StageTransition,
    Decision,
    Guard,
    TransitionRule,
    can_transition,
    get_transition_rule,
    entity_for_stage,
    DECISION_VARIABLES,
    TERMINAL_STAGES,
)


# Evaluation order matters: the first unmet guard decides the error
GUARD_ORDER = (
    Guard.ROWS_VALID,
    Guard.ROWS_FULLY_APPROVED,
    Guard.SHEET_APPROVED,
    Guard.ALL_SHEETS_APPROVED,
)


class TransitionOutcome(NamedTuple):
    """Result of a successful transition."""
    from_stage: Stage
    to_stage: Stage
    transition: StageTransition
    variables: Dict[str, Any]
    record: Dict[str, Any]


class StageGate:
    """
    State machine for one process instance.

    Holds no persistence of its own: the caller loads the current stage,
    computes the guard facts and stores the resulting stage and variables.
    """

    def __init__(
        self,
        process_instance_id: str,
        current_stage: Stage,
        *,
        user_permissions: Optional[list[str]] = None,
    ):
        """
        Initialize the gate.

        Args:
            process_instance_id: ID of the process instance
            current_stage: Stage the process is in
            user_permissions: Permission strings of the acting principal
        """
        self.process_instance_id = process_instance_id
        self._stage = Stage(current_stage)
        self._checker = PermissionChecker(user_permissions or [])
        self._transition_history: list[Dict[str, Any]] = []

    @property
    def stage(self) -> Stage:
        """Current stage of the process."""
        return self._stage

    @property
    def is_terminal(self) -> bool:
        return self._stage in TERMINAL_STAGES

    def can_perform(self, transition: StageTransition) -> bool:
        """Check if a transition is valid from the current stage for this caller.

        Guards are not evaluated here; they depend on sheet state.
        """
        if not can_transition(self._stage, transition):
            return False

        rule = get_transition_rule(self._stage, transition)
        if rule and rule.requires_permission:
            return self._checker.has_permission(rule.requires_permission)
        return True

    def get_available_transitions(self) -> list[StageTransition]:
        """Get list of transitions available from the current stage."""
        return [t for t in StageTransition if self.can_perform(t)]

    def authorize(self, transition: StageTransition) -> TransitionRule:
        """
        Check that a transition is legal from the current stage for this caller.

        Raises:
            TransitionError: If the transition is invalid from the current stage
            UnauthorizedTransitionError: If the caller lacks the required permission
        """
        transition = StageTransition(transition)
        if not can_transition(self._stage, transition):
            raise TransitionError(
                f"Cannot perform {transition.value} from stage {self._stage.value}",
                self._stage,
                transition,
            )

        rule = get_transition_rule(self._stage, transition)
        if rule.requires_permission and not self._checker.has_permission(rule.requires_permission):
            raise UnauthorizedTransitionError(
                f"Permission denied: {transition.value} from {self._stage.value} "
                f"requires {rule.requires_permission}",
                rule.requires_permission,
            )
        return rule

    def transition(
        self,
        transition: StageTransition,
        *,
        facts: Iterable[Guard] = (),
        comment: Optional[str] = None,
        username: Optional[str] = None,
    ) -> TransitionOutcome:
        """
        Perform a stage transition.

        Args:
            transition: The transition to perform
            facts: Guards known to hold for this process right now
            comment: Comment (required for rejections)
            username: User performing the transition

        Returns:
            The outcome with the new stage and the variables to emit

        Raises:
            TransitionError: If the transition is invalid from the current stage
            UnauthorizedTransitionError: If the caller lacks the required permission
            RowValidationError, IncompleteApprovalError,
            IncompleteMigrationPrerequisiteError: If a guard does not hold
        """
        transition = StageTransition(transition)
        rule = self.authorize(transition)

        if rule.requires_comment and not (comment and comment.strip()):
            raise TransitionError(
                f"Transition {transition.value} requires a comment",
                self._stage,
                transition,
            )

        satisfied = set(facts)
        for guard in GUARD_ORDER:
            if guard in rule.guards and guard not in satisfied:
                self._raise_for_guard(guard)

        from_stage = self._stage
        variables = self._decision_variables(from_stage, transition)

        record = {
            "process_instance_id": self.process_instance_id,
            "from_stage": from_stage.value,
            "to_stage": rule.to_stage.value,
            "transition": transition.value,
            "username": username,
            "comment": comment,
            "variables": variables,
            "timestamp": datetime.utcnow(),
        }
        self._transition_history.append(record)
        self._stage = rule.to_stage

        return TransitionOutcome(from_stage, rule.to_stage, transition, variables, record)

    def get_history(self) -> list[Dict[str, Any]]:
        """Transitions performed through this gate instance."""
        return self._transition_history.copy()

    @staticmethod
    def _decision_variables(from_stage: Stage, transition: StageTransition) -> Dict[str, Any]:
        entity = entity_for_stage(from_stage)
        if entity is None:
            return {"migrationStatus": "COMPLETED"}
        return {DECISION_VARIABLES[entity]: Decision(transition.value).value}

    def _raise_for_guard(self, guard: Guard) -> None:
        entity = entity_for_stage(self._stage)
        label = entity.value if entity else self._stage.value
        if guard == Guard.ROWS_VALID:
            raise RowValidationError(f"Submitted {label} rows are not valid")
        if guard == Guard.ROWS_FULLY_APPROVED:
            raise IncompleteApprovalError(f"Not every {label} row is approved")
        if guard == Guard.SHEET_APPROVED:
            raise IncompleteApprovalError(f"The {label} sheet has not been approved")
        raise IncompleteMigrationPrerequisiteError(
            "Item, plan and product sheets must all be approved before migration"
        )
