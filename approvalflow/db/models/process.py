"""Workflow process database models.

Stores process instances with their current stage and decision variables,
the user tasks opened for each stage, and the stage transition history.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, JSON, ForeignKey, Text
from sqlalchemy.orm import relationship

from approvalflow.db.base import Base


class TaskStatus:
    OPEN = "OPEN"
    COMPLETED = "COMPLETED"


class ProcessInstance(Base):
    """
    One run of the item -> plan -> product approval workflow.

    ``variables`` mirrors the process variables handed to the workflow
    engine; decision variables in it are overwritten, never accumulated.
    """
    __tablename__ = "process_instances"

    id = Column(String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    business_key = Column(String(255), nullable=True, index=True)

    # Process instance id in the external engine, when one is configured
    engine_process_id = Column(String(64), nullable=True)

    stage = Column(String(50), nullable=False, default="ITEM_EDIT", index=True)
    variables = Column(JSON, nullable=False, default=dict)

    started_by = Column(String(255), nullable=False)
    completed_at = Column(DateTime, nullable=True)

    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __mapper_args__ = {"version_id_col": version}

    tasks = relationship("WorkflowTask", back_populates="process", order_by="WorkflowTask.created_at")
    history = relationship("StageHistory", back_populates="process", order_by="StageHistory.id")

    def __repr__(self) -> str:
        return f"<ProcessInstance {self.id} [{self.stage}]>"


class WorkflowTask(Base):
    """
    A user task for one stage of a process instance.

    The task id is the token clients present when acting on a stage.
    """
    __tablename__ = "workflow_tasks"

    id = Column(String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    process_instance_id = Column(String(64), ForeignKey("process_instances.id", ondelete="CASCADE"), nullable=False, index=True)

    name = Column(String(255), nullable=False)
    task_definition_key = Column(String(100), nullable=False)
    stage = Column(String(50), nullable=False)
    candidate_group = Column(String(20), nullable=False, index=True)  # MAKER, CHECKER, ADMIN

    assignee = Column(String(255), nullable=True, index=True)
    status = Column(String(20), nullable=False, default=TaskStatus.OPEN, index=True)

    # Task id in the external engine, when one is configured
    engine_task_id = Column(String(64), nullable=True)

    completed_by = Column(String(255), nullable=True)
    completed_at = Column(DateTime, nullable=True)
    decision = Column(String(20), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    process = relationship("ProcessInstance", back_populates="tasks")

    def __repr__(self) -> str:
        return f"<WorkflowTask {self.task_definition_key} [{self.status}]>"


class StageHistory(Base):
    """
    Records all stage transitions for a process instance.

    Provides a complete audit trail of the approval workflow.
    """
    __tablename__ = "stage_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    process_instance_id = Column(String(64), ForeignKey("process_instances.id", ondelete="CASCADE"), nullable=False, index=True)
    task_id = Column(String(64), nullable=True)

    from_stage = Column(String(50), nullable=False)
    to_stage = Column(String(50), nullable=False)
    transition = Column(String(20), nullable=False)

    username = Column(String(255), nullable=True)
    comment = Column(Text, nullable=True)

    variables = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    process = relationship("ProcessInstance", back_populates="history")

    def __repr__(self) -> str:
        return f"<StageHistory {self.from_stage} -> {self.to_stage}>"
