"""Workflow service for the item -> plan -> product approval process.

Ties the stage gate to persistence: loads the process, establishes the guard
facts from the sheet components, stores the resulting stage and decision
variables, keeps the per-stage task list and mirrors decisions into the
workflow engine. Never commits; the API layer owns the transaction.
"""

import logging
from datetime import datetime
from typing import Optional, Dict, Any, List

from sqlalchemy import or_
from sqlalchemy.orm import Session

from approvalflow.core.config import Settings, get_settings
from approvalflow.core.errors import (
    ProcessNotFoundError,
    RowNotFoundError,
    TaskNotFoundError,
    TransitionError,
    UnauthorizedTransitionError,
)
from approvalflow.core.migration import MigrationGate
from approvalflow.core.rbac.checker import PermissionChecker
from approvalflow.core.rbac.roles import Role
from approvalflow.core.security import Principal
from approvalflow.core.sheets import (
    SheetStore,
    RowApprovalTracker,
    SheetApprovalCoordinator,
    get_entity_spec,
    validate_rows,
    row_to_dict,
)
from approvalflow.db.models import (
    ProcessInstance,
    WorkflowTask,
    StageHistory,
    TaskStatus,
    Sheet,
    SheetStatus,
)
from approvalflow.db.session import flush
from approvalflow.services.workflow_engine import WorkflowEngineClient, get_engine_client
from .gate import StageGate, TransitionOutcome
from .states import (
    EntityType,
    Stage,
    StageTransition,
    Guard,
    INITIAL_STAGE,
    TERMINAL_STAGES,
    EDIT_STAGES,
    APPROVE_STAGES,
    STAGE_NUMBERS,
    entity_for_stage,
    is_approve_stage,
    candidate_group_for,
    task_definition_key,
    task_name,
)

logger = logging.getLogger(__name__)

# Acts for the auto-migration triggered when a process reaches MIGRATION
SYSTEM_PRINCIPAL = Principal(username="system", role=Role.ADMIN)


class WorkflowService:
    """
    High-level service for the reference data approval workflow.

    Handles:
    - Starting processes and tracking their open task
    - Maker submissions, BACK navigation and checker rejections
    - Row, bulk and sheet approval
    - The production migration
    - Read models for the maker and checker screens
    """

    def __init__(
        self,
        db: Session,
        engine: Optional[WorkflowEngineClient] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Initialize the workflow service.

        Args:
            db: Database session
            engine: Workflow engine adapter, built from settings if omitted
            settings: Application settings
        """
        self.db = db
        self.settings = settings or get_settings()
        self.engine = engine or get_engine_client(self.settings)
        self.store = SheetStore(db)
        self.tracker = RowApprovalTracker(db)
        self.coordinator = SheetApprovalCoordinator(db)
        self.migration = MigrationGate(db)

    # ------------------------------------------------------------------
    # Processes
    # ------------------------------------------------------------------

    def start_process(self, principal: Principal, business_key: Optional[str] = None) -> Dict[str, Any]:
        """Start a new approval process at ITEM_EDIT and open its first task."""
        self._require(principal, "processes:create")

        process = ProcessInstance(
            business_key=business_key,
            stage=INITIAL_STAGE.value,
            variables={},
            started_by=principal.username,
        )
        process.engine_process_id = self.engine.start_process(
            business_key, {"initiator": principal.username}
        )
        self.db.add(process)
        flush(self.db)

        self._open_task(process)
        flush(self.db)

        logger.info(f"Process {process.id} started by {principal.username}")
        return self._process_to_dict(process, principal)

    def get_process(self, process_instance_id: str, *, for_update: bool = False) -> ProcessInstance:
        query = self.db.query(ProcessInstance).filter(ProcessInstance.id == process_instance_id)
        if for_update:
            query = query.with_for_update()
        process = query.first()
        if not process:
            raise ProcessNotFoundError(
                f"Process {process_instance_id} not found",
                process_instance_id=process_instance_id,
            )
        return process

    def describe_process(self, process_instance_id: str, principal: Optional[Principal] = None) -> Dict[str, Any]:
        return self._process_to_dict(self.get_process(process_instance_id), principal)

    def history(self, process_instance_id: str) -> List[Dict[str, Any]]:
        """Stage transition audit trail, oldest first."""
        process = self.get_process(process_instance_id)
        return [
            {
                "id": h.id,
                "task_id": h.task_id,
                "from_stage": h.from_stage,
                "to_stage": h.to_stage,
                "transition": h.transition,
                "username": h.username,
                "comment": h.comment,
                "variables": h.variables or {},
                "created_at": h.created_at.isoformat() if h.created_at else None,
            }
            for h in self.db.query(StageHistory).filter(
                StageHistory.process_instance_id == process.id
            ).order_by(StageHistory.id).all()
        ]

    # ------------------------------------------------------------------
    # Maker operations
    # ------------------------------------------------------------------

    def submit_stage_data(
        self,
        process_instance_id: str,
        entity_type,
        rows: List[Dict[str, Any]],
        principal: Principal,
    ) -> Dict[str, Any]:
        """
        Store the maker's rows for a stage and move it to its approval stage.

        Raises:
            TransitionError: If the process is not in this entity's edit stage
            UnauthorizedTransitionError: If the caller may not submit
            RowValidationError: If the rows are empty or malformed
        """
        entity = get_entity_spec(entity_type).entity_type
        process = self.get_process(process_instance_id, for_update=True)

        if Stage(process.stage) != EDIT_STAGES[entity]:
            raise TransitionError(
                f"Process {process.id} is in {process.stage}; {entity.value} data cannot be submitted",
                Stage(process.stage),
                StageTransition.FORWARD,
            )

        gate = self._gate(process, principal)
        gate.authorize(StageTransition.FORWARD)
        task = self._current_task(process, principal)

        cleaned = validate_rows(entity, rows)
        sheet = self.store.get_or_create_sheet(process.id, entity, principal.username)
        stored = self.store.replace_rows(sheet, cleaned, principal.username)

        self._advance(process, task, gate, principal, StageTransition.FORWARD, facts=[Guard.ROWS_VALID])

        return {
            "process_instance_id": process.id,
            "entity_type": entity.value,
            "sheet_id": sheet.sheet_id,
            "row_count": len(stored),
            "stage": process.stage,
        }

    def go_back(self, task_id: str, principal: Principal) -> Dict[str, Any]:
        """Return from an edit stage to the previous approval stage. No rows are stored."""
        task, process = self._task_and_process(task_id, principal)
        gate = self._gate(process, principal)
        self._advance(process, task, gate, principal, StageTransition.BACK)
        return self._process_to_dict(process, principal)

    def get_maker_data(self, process_instance_id: str, entity_type) -> Dict[str, Any]:
        """
        Rows for the maker's edit screen.

        The open sheet's rows when one exists, otherwise the current master data.
        """
        spec = get_entity_spec(entity_type)
        process = self.get_process(process_instance_id)

        sheet = self.store.find_open_sheet(process.id, spec.entity_type)
        if sheet:
            return {
                "process_instance_id": process.id,
                "entity_type": spec.entity_type.value,
                "is_existing_sheet": True,
                "sheet_id": sheet.sheet_id,
                "comments": sheet.comments,
                "rows": [row_to_dict(r) for r in self.store.list_rows(sheet)],
            }

        master_rows = self.db.query(spec.master_model).order_by(spec.master_model.id).all()
        return {
            "process_instance_id": process.id,
            "entity_type": spec.entity_type.value,
            "is_existing_sheet": False,
            "sheet_id": None,
            "comments": None,
            "rows": [row_to_dict(r) for r in master_rows],
        }

    # ------------------------------------------------------------------
    # Checker operations
    # ------------------------------------------------------------------

    def approve_row(self, entity_type, row_id: int, principal: Principal) -> Dict[str, Any]:
        """
        Approve a single staging row.

        Raises:
            RowNotFoundError: If the row does not exist
            AlreadyApprovedError: If it was approved before
            TransitionError: If its process is not awaiting approval of this entity
        """
        self._require(principal, "rows:approve")
        model = get_entity_spec(entity_type).staging_model

        row = self.db.query(model).filter(model.id == row_id).first()
        if row is None:
            raise RowNotFoundError(f"{model.__tablename__} row {row_id} not found", row_id=row_id)
        if not row.approved:
            self._require_approve_stage(self.store.get_sheet(row.sheet_id))

        row = self.tracker.approve_row(entity_type, row_id, principal.username)
        return row_to_dict(row)

    def approve_all_rows(self, sheet_id: str, principal: Principal) -> Dict[str, Any]:
        """Approve every pending row of a sheet. Returns how many were approved."""
        self._require(principal, "rows:approve")
        sheet = self.store.get_sheet(sheet_id)
        if sheet.status == SheetStatus.OPEN:
            self._require_approve_stage(sheet)

        count = self.tracker.approve_all_rows(sheet_id, principal.username)
        return {"sheet_id": sheet_id, "approved_count": count}

    def approve_sheet(self, sheet_id: str, task_id: str, principal: Principal) -> Dict[str, Any]:
        """
        Approve a fully approved sheet and complete the stage's approval task.

        Raises:
            IncompleteApprovalError: If rows are still pending
            AlreadyApprovedError: If the sheet was approved before
            TransitionError: If the sheet does not belong to the task's stage
        """
        self._require(principal, "sheets:approve")
        task, process = self._task_and_process(task_id, principal)

        sheet = self.store.get_sheet(sheet_id)
        entity = EntityType(sheet.entity_type)
        if sheet.process_instance_id != process.id or Stage(process.stage) != APPROVE_STAGES[entity]:
            raise TransitionError(
                f"Sheet {sheet_id} cannot be approved from task {task_id} "
                f"(process stage {process.stage})"
            )

        gate = self._gate(process, principal)
        gate.authorize(StageTransition.APPROVE)

        self.coordinator.approve_sheet(sheet_id, principal.username)
        outcome = self._advance(
            process, task, gate, principal, StageTransition.APPROVE,
            facts=self._approval_facts(process, entity),
        )

        result = {
            "sheet_id": sheet_id,
            "entity_type": entity.value,
            "stage": process.stage,
            "migration": None,
        }
        if outcome.to_stage == Stage.MIGRATION and self.settings.auto_migrate:
            result["migration"] = self._run_migration(process, SYSTEM_PRINCIPAL).to_dict()
            result["stage"] = process.stage
        return result

    def approve_stage(self, task_id: str, principal: Principal) -> Dict[str, Any]:
        """
        Approve a stage whose sheet is already approved.

        Used when a stage is reached again through BACK.
        """
        task, process = self._task_and_process(task_id, principal)
        entity = entity_for_stage(Stage(process.stage))
        if entity is None or not is_approve_stage(Stage(process.stage)):
            raise TransitionError(
                f"Process {process.id} is in {process.stage}; nothing to approve",
                Stage(process.stage),
                StageTransition.APPROVE,
            )

        gate = self._gate(process, principal)
        outcome = self._advance(
            process, task, gate, principal, StageTransition.APPROVE,
            facts=self._approval_facts(process, entity),
        )
        if outcome.to_stage == Stage.MIGRATION and self.settings.auto_migrate:
            self._run_migration(process, SYSTEM_PRINCIPAL)
        return self._process_to_dict(process, principal)

    def reject_stage(self, task_id: str, comments: Optional[str], principal: Principal) -> Dict[str, Any]:
        """
        Send a stage back to the maker with comments.

        The stage's sheet is closed and reopened with its rows unapproved and
        the comments attached.
        """
        task, process = self._task_and_process(task_id, principal)
        entity = entity_for_stage(Stage(process.stage))

        gate = self._gate(process, principal)
        self._advance(process, task, gate, principal, StageTransition.REJECT, comment=comments)

        reopened = None
        latest = self.store.find_latest_sheet(process.id, entity, for_update=True)
        if latest is not None and latest.status in (SheetStatus.OPEN, SheetStatus.APPROVED):
            reopened = self.store.reopen_sheet(latest, principal.username, comments)

        result = self._process_to_dict(process, principal)
        result["sheet_id"] = reopened.sheet_id if reopened else None
        return result

    def get_approval_data(self, process_instance_id: str, entity_type) -> Dict[str, Any]:
        """Rows and approval state of an entity's current sheet for the checker screen."""
        spec = get_entity_spec(entity_type)
        process = self.get_process(process_instance_id)
        sheet = self.store.find_latest_sheet(process.id, spec.entity_type)

        rows = self.store.list_rows(sheet) if sheet else []
        return {
            "process_instance_id": process.id,
            "entity_type": spec.entity_type.value,
            "stage": process.stage,
            "sheet": self._sheet_to_dict(sheet) if sheet else None,
            "rows": [row_to_dict(r) for r in rows],
            "fully_approved": bool(rows) and all(r.approved for r in rows),
        }

    def get_sheet(self, sheet_id: str) -> Dict[str, Any]:
        sheet = self.store.get_sheet(sheet_id)
        data = self._sheet_to_dict(sheet)
        data["rows"] = [row_to_dict(r) for r in self.store.list_rows(sheet)]
        return data

    # ------------------------------------------------------------------
    # Migration
    # ------------------------------------------------------------------

    def migrate(self, process_instance_id: str, principal: Principal) -> Dict[str, Any]:
        """
        Copy the approved sheets to the master tables and finish the process.

        Raises:
            TransitionError: If the process is not awaiting migration
            UnauthorizedTransitionError: If the caller may not migrate
            IncompleteMigrationPrerequisiteError: If a sheet is not approved
            PartialMigrationError: If the copy failed and was rolled back
        """
        process = self.get_process(process_instance_id, for_update=True)
        self._gate(process, principal).authorize(StageTransition.MIGRATE)
        result = self._run_migration(process, principal)
        data = result.to_dict()
        data["process_instance_id"] = process.id
        data["stage"] = process.stage
        return data

    def list_master(self, entity_type) -> List[Dict[str, Any]]:
        model = get_entity_spec(entity_type).master_model
        return [row_to_dict(r) for r in self.db.query(model).order_by(model.id).all()]

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def list_tasks(self, principal: Principal) -> List[Dict[str, Any]]:
        """Open tasks for the caller's role group or assigned to the caller."""
        query = self.db.query(WorkflowTask).filter(WorkflowTask.status == TaskStatus.OPEN)
        if not principal.is_admin:
            query = query.filter(or_(
                WorkflowTask.candidate_group == principal.role.value,
                WorkflowTask.assignee == principal.username,
            ))
        return [self._task_to_dict(t) for t in query.order_by(WorkflowTask.created_at).all()]

    def claim_task(self, task_id: str, principal: Principal) -> Dict[str, Any]:
        task = self._get_open_task(task_id)
        if not principal.is_admin and task.candidate_group != principal.role.value:
            raise UnauthorizedTransitionError(
                f"Task {task_id} is for the {task.candidate_group} group"
            )
        if task.assignee and task.assignee != principal.username:
            raise TransitionError(f"Task {task_id} is already claimed by {task.assignee}")

        if task.assignee != principal.username:
            self.engine.claim_task(task.engine_task_id, principal.username)
            task.assignee = principal.username
            flush(self.db)
            logger.info(f"Task {task_id} claimed by {principal.username}")
        return self._task_to_dict(task)

    def unclaim_task(self, task_id: str, principal: Principal) -> Dict[str, Any]:
        task = self._get_open_task(task_id)
        if task.assignee and task.assignee != principal.username and not principal.is_admin:
            raise UnauthorizedTransitionError(f"Task {task_id} is claimed by {task.assignee}")

        if task.assignee:
            self.engine.unclaim_task(task.engine_task_id)
            task.assignee = None
            flush(self.db)
            logger.info(f"Task {task_id} released by {principal.username}")
        return self._task_to_dict(task)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _gate(self, process: ProcessInstance, principal: Principal) -> StageGate:
        return StageGate(process.id, Stage(process.stage), user_permissions=principal.permissions)

    @staticmethod
    def _require(principal: Principal, permission: str) -> None:
        if not PermissionChecker(principal.permissions).has_permission(permission):
            raise UnauthorizedTransitionError(
                f"Permission denied: requires {permission}",
                permission,
            )

    def _require_approve_stage(self, sheet: Sheet) -> None:
        process = self.get_process(sheet.process_instance_id)
        entity = EntityType(sheet.entity_type)
        if Stage(process.stage) != APPROVE_STAGES[entity]:
            raise TransitionError(
                f"Process {process.id} is in {process.stage}; {entity.value} rows cannot be approved"
            )

    def _approval_facts(self, process: ProcessInstance, entity: EntityType) -> List[Guard]:
        facts = []
        sheet = self.store.find_latest_sheet(process.id, entity)
        if sheet is not None:
            if self.tracker.is_fully_approved(sheet.sheet_id):
                facts.append(Guard.ROWS_FULLY_APPROVED)
            if self.coordinator.is_sheet_approved(sheet):
                facts.append(Guard.SHEET_APPROVED)
        if self.migration.prerequisites_met(process.id):
            facts.append(Guard.ALL_SHEETS_APPROVED)
        return facts

    def _get_open_task(self, task_id: str, *, for_update: bool = False) -> WorkflowTask:
        query = self.db.query(WorkflowTask).filter(WorkflowTask.id == task_id)
        if for_update:
            query = query.with_for_update()
        task = query.first()
        if not task:
            raise TaskNotFoundError(f"Task {task_id} not found", task_id=task_id)
        if task.status != TaskStatus.OPEN:
            raise TransitionError(f"Task {task_id} was already completed by {task.completed_by}")
        return task

    def _task_and_process(self, task_id: str, principal: Principal):
        task = self._get_open_task(task_id, for_update=True)
        self._check_assignee(task, principal)
        process = self.get_process(task.process_instance_id, for_update=True)
        if task.stage != process.stage:
            raise TransitionError(f"Task {task_id} belongs to stage {task.stage}, process is in {process.stage}")
        return task, process

    def _current_task(self, process: ProcessInstance, principal: Principal) -> Optional[WorkflowTask]:
        task = self.db.query(WorkflowTask).filter(
            WorkflowTask.process_instance_id == process.id,
            WorkflowTask.status == TaskStatus.OPEN,
        ).with_for_update().first()
        if task:
            self._check_assignee(task, principal)
        return task

    @staticmethod
    def _check_assignee(task: WorkflowTask, principal: Principal) -> None:
        if task.assignee and task.assignee != principal.username and not principal.is_admin:
            raise UnauthorizedTransitionError(f"Task {task.id} is assigned to {task.assignee}")

    def _open_task(self, process: ProcessInstance) -> Optional[WorkflowTask]:
        stage = Stage(process.stage)
        if stage in TERMINAL_STAGES:
            return None
        task = WorkflowTask(
            process_instance_id=process.id,
            name=task_name(stage),
            task_definition_key=task_definition_key(stage),
            stage=stage.value,
            candidate_group=candidate_group_for(stage).value,
            status=TaskStatus.OPEN,
            engine_task_id=self.engine.active_task_id(process.engine_process_id),
        )
        self.db.add(task)
        return task

    def _advance(
        self,
        process: ProcessInstance,
        task: Optional[WorkflowTask],
        gate: StageGate,
        principal: Principal,
        transition: StageTransition,
        *,
        facts=(),
        comment: Optional[str] = None,
    ) -> TransitionOutcome:
        """Run a gate transition and persist its effects."""
        outcome = gate.transition(transition, facts=facts, comment=comment, username=principal.username)
        now = datetime.utcnow()

        # Decision variables are overwritten, never accumulated
        variables = dict(process.variables or {})
        variables.update(outcome.variables)
        process.variables = variables
        process.stage = outcome.to_stage.value
        if outcome.to_stage in TERMINAL_STAGES:
            process.completed_at = now

        if task is not None:
            self.engine.complete_task(task.engine_task_id, outcome.variables)
            task.status = TaskStatus.COMPLETED
            task.completed_by = principal.username
            task.completed_at = now
            task.decision = outcome.transition.value

        self.db.add(StageHistory(
            process_instance_id=process.id,
            task_id=task.id if task else None,
            from_stage=outcome.from_stage.value,
            to_stage=outcome.to_stage.value,
            transition=outcome.transition.value,
            username=principal.username,
            comment=comment,
            variables=outcome.variables,
        ))

        self._open_task(process)
        flush(self.db)

        logger.info(
            f"Process {process.id}: {outcome.from_stage.value} -> {outcome.to_stage.value} "
            f"({outcome.transition.value} by {principal.username})"
        )
        return outcome

    def _run_migration(self, process: ProcessInstance, principal: Principal):
        gate = self._gate(process, principal)
        gate.authorize(StageTransition.MIGRATE)
        task = self.db.query(WorkflowTask).filter(
            WorkflowTask.process_instance_id == process.id,
            WorkflowTask.status == TaskStatus.OPEN,
        ).first()

        result = self.migration.migrate(process.id, principal.username)
        self._advance(process, task, gate, principal, StageTransition.MIGRATE)
        return result

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def _process_to_dict(self, process: ProcessInstance, principal: Optional[Principal] = None) -> Dict[str, Any]:
        stage = Stage(process.stage)
        entity = entity_for_stage(stage)
        open_task = self.db.query(WorkflowTask).filter(
            WorkflowTask.process_instance_id == process.id,
            WorkflowTask.status == TaskStatus.OPEN,
        ).first()
        return {
            "id": process.id,
            "business_key": process.business_key,
            "stage": stage.value,
            "entity_type": entity.value if entity else None,
            "stage_number": STAGE_NUMBERS[entity] if entity else None,
            "variables": process.variables or {},
            "started_by": process.started_by,
            "completed_at": process.completed_at.isoformat() if process.completed_at else None,
            "created_at": process.created_at.isoformat() if process.created_at else None,
            "task": self._task_to_dict(open_task) if open_task else None,
            "available_transitions": (
                [t.value for t in self._gate(process, principal).get_available_transitions()]
                if principal else []
            ),
        }

    @staticmethod
    def _task_to_dict(task: WorkflowTask) -> Dict[str, Any]:
        return {
            "id": task.id,
            "process_instance_id": task.process_instance_id,
            "name": task.name,
            "task_definition_key": task.task_definition_key,
            "stage": task.stage,
            "candidate_group": task.candidate_group,
            "assignee": task.assignee,
            "status": task.status,
            "created_at": task.created_at.isoformat() if task.created_at else None,
        }

    @staticmethod
    def _sheet_to_dict(sheet: Sheet) -> Dict[str, Any]:
        return {
            "sheet_id": sheet.sheet_id,
            "process_instance_id": sheet.process_instance_id,
            "entity_type": sheet.entity_type,
            "status": sheet.status,
            "created_by": sheet.created_by,
            "approved_by": sheet.approved_by,
            "approved_at": sheet.approved_at.isoformat() if sheet.approved_at else None,
            "comments": sheet.comments,
            "created_at": sheet.created_at.isoformat() if sheet.created_at else None,
        }
