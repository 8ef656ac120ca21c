"""Workflow engine adapters.

The approval service keeps its own stage bookkeeping; an engine adapter
mirrors each decision into the BPMN engine that drives the maker/checker
task lists. ``local`` runs without an engine, ``flowable`` talks to the
Flowable REST API.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx

from approvalflow.core.config import Settings, get_settings
from approvalflow.core.errors import EngineError

logger = logging.getLogger(__name__)


def to_engine_variables(variables: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Convert a variables dict into the REST ``[{"name", "value"}]`` form."""
    return [{"name": name, "value": value} for name, value in variables.items()]


class WorkflowEngineClient(ABC):
    """Operations the approval service needs from a workflow engine."""

    name = "abstract"

    @abstractmethod
    def start_process(self, business_key: Optional[str], variables: Dict[str, Any]) -> Optional[str]:
        """Start a process instance, returning the engine's process id."""

    @abstractmethod
    def active_task_id(self, engine_process_id: Optional[str]) -> Optional[str]:
        """Id of the open user task of an engine process, if any."""

    @abstractmethod
    def complete_task(self, engine_task_id: Optional[str], variables: Dict[str, Any]) -> None:
        """Complete a task, setting the given process variables."""

    @abstractmethod
    def claim_task(self, engine_task_id: Optional[str], assignee: str) -> None:
        pass

    @abstractmethod
    def unclaim_task(self, engine_task_id: Optional[str]) -> None:
        pass


class LocalEngineClient(WorkflowEngineClient):
    """No external engine: stage routing is done entirely by the stage gate."""

    name = "local"

    def start_process(self, business_key, variables):
        logger.debug(f"Local engine: start process {business_key}")
        return None

    def active_task_id(self, engine_process_id):
        return None

    def complete_task(self, engine_task_id, variables):
        logger.debug(f"Local engine: complete task with {variables}")

    def claim_task(self, engine_task_id, assignee):
        logger.debug(f"Local engine: claim task for {assignee}")

    def unclaim_task(self, engine_task_id):
        logger.debug("Local engine: unclaim task")


class FlowableEngineClient(WorkflowEngineClient):
    """Flowable REST API client."""

    name = "flowable"

    def __init__(self, settings: Settings, transport: Optional[httpx.BaseTransport] = None):
        self.settings = settings
        auth = None
        if settings.flowable_username:
            auth = (settings.flowable_username, settings.flowable_password or "")
        self._client = httpx.Client(
            base_url=settings.flowable_url.rstrip("/"),
            auth=auth,
            timeout=settings.engine_timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    def close(self) -> None:
        self._client.close()

    def start_process(self, business_key, variables):
        body = {
            "processDefinitionKey": self.settings.flowable_process_key,
            "variables": to_engine_variables(variables),
        }
        if business_key:
            body["businessKey"] = business_key
        data = self._request("POST", "/runtime/process-instances", json=body)
        logger.info(f"Started Flowable process {data.get('id')} ({self.settings.flowable_process_key})")
        return data.get("id")

    def active_task_id(self, engine_process_id):
        if not engine_process_id:
            return None
        data = self._request("GET", "/runtime/tasks", params={"processInstanceId": engine_process_id})
        tasks = data.get("data") or []
        return tasks[0]["id"] if tasks else None

    def complete_task(self, engine_task_id, variables):
        if not engine_task_id:
            raise EngineError("Cannot complete a task without an engine task id")
        self._request(
            "POST",
            f"/runtime/tasks/{engine_task_id}",
            json={"action": "complete", "variables": to_engine_variables(variables)},
        )
        logger.info(f"Completed Flowable task {engine_task_id} with {variables}")

    def claim_task(self, engine_task_id, assignee):
        if engine_task_id:
            self._request("POST", f"/runtime/tasks/{engine_task_id}", json={"action": "claim", "assignee": assignee})

    def unclaim_task(self, engine_task_id):
        if engine_task_id:
            self._request("POST", f"/runtime/tasks/{engine_task_id}", json={"action": "claim", "assignee": None})

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        try:
            response = self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise EngineError(
                f"Flowable {method} {path} failed with {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise EngineError(f"Flowable {method} {path} failed: {e}") from e

        if not response.content:
            return {}
        return response.json()


def get_engine_client(settings: Optional[Settings] = None) -> WorkflowEngineClient:
    """Build the engine adapter selected by ``engine_backend``."""
    settings = settings or get_settings()
    backend = settings.engine_backend.lower()
    if backend == "flowable":
        return FlowableEngineClient(settings)
    if backend == "local":
        return LocalEngineClient()
    raise ValueError(f"Unknown engine backend: {settings.engine_backend}")
