"""
Workflow Executor.

The downstream workflow performs final validation and writes events to the
store. The harvester's responsibility ends at submitting one size-bounded
payload per batch and receiving an execution handle.
"""

import json
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import requests

from event_harvester.runtime.errors import PayloadTooLargeError

logger = logging.getLogger(__name__)

# Hard limit on a serialized payload accepted by the executor
PAYLOAD_HARD_LIMIT = 262_144


def serialize_payload(payload: Dict[str, Any]) -> bytes:
    """Compact UTF-8 JSON. The batcher measures with the same function it submits with."""
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


@dataclass
class ExecutionHandle:
    execution_id: str
    batch_id: str
    event_count: int = 0
    size_bytes: int = 0
    submitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class WorkflowExecutor(ABC):
    """Abstract downstream workflow executor."""

    hard_limit: int = PAYLOAD_HARD_LIMIT

    def submit(self, batch_id: str, payload: Dict[str, Any]) -> ExecutionHandle:
        """
        Submit one batch payload.

        Raises:
            PayloadTooLargeError: if the serialized payload exceeds the hard limit.
        """
        body = serialize_payload(payload)
        if len(body) > self.hard_limit:
            raise PayloadTooLargeError(len(body), self.hard_limit)
        return self._send(batch_id, body, len(payload.get("events", [])))

    @abstractmethod
    def _send(self, batch_id: str, body: bytes, event_count: int) -> ExecutionHandle:
        pass

    def close(self) -> None:
        """Release any held resources."""

    def __enter__(self) -> "WorkflowExecutor":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class InMemoryWorkflowExecutor(WorkflowExecutor):
    """Records submissions in memory. Used by tests and dry runs."""

    def __init__(self, hard_limit: int = PAYLOAD_HARD_LIMIT):
        self.hard_limit = hard_limit
        self.submissions: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def _send(self, batch_id: str, body: bytes, event_count: int) -> ExecutionHandle:
        handle = ExecutionHandle(
            execution_id=f"local-{uuid.uuid4().hex[:12]}",
            batch_id=batch_id,
            event_count=event_count,
            size_bytes=len(body),
        )
        with self._lock:
            self.submissions.append({"batch_id": batch_id, "payload": json.loads(body)})
        return handle

    @property
    def submitted_events(self) -> List[Dict[str, Any]]:
        return [e for s in self.submissions for e in s["payload"].get("events", [])]


class HttpWorkflowExecutor(WorkflowExecutor):
    """
    Submit batches to an HTTP endpoint that starts a workflow execution.

    The endpoint receives ``{"name": <batch id>, "input": <payload>}`` and
    is expected to answer with JSON containing an ``executionId``.
    """

    def __init__(
        self,
        endpoint: str,
        api_key: Optional[str] = None,
        timeout_s: float = 30.0,
        hard_limit: int = PAYLOAD_HARD_LIMIT,
    ):
        if not endpoint:
            raise ValueError("HttpWorkflowExecutor requires an endpoint")
        self.endpoint = endpoint
        self.api_key = api_key
        self.timeout_s = timeout_s
        self.hard_limit = hard_limit
        self._session: Optional[requests.Session] = None

    def _get_session(self) -> requests.Session:
        """Get or create HTTP session."""
        if self._session is None:
            self._session = requests.Session()
            self._session.headers.update({"Content-Type": "application/json"})
            if self.api_key:
                self._session.headers["Authorization"] = f"Bearer {self.api_key}"
        return self._session

    def _send(self, batch_id: str, body: bytes, event_count: int) -> ExecutionHandle:
        envelope = b'{"name":' + json.dumps(batch_id).encode("utf-8") + b',"input":' + body + b"}"
        response = self._get_session().post(self.endpoint, data=envelope, timeout=self.timeout_s)
        response.raise_for_status()

        execution_id = batch_id
        if response.content:
            data = response.json()
            execution_id = data.get("executionId") or data.get("executionArn") or batch_id
        return ExecutionHandle(
            execution_id=execution_id,
            batch_id=batch_id,
            event_count=event_count,
            size_bytes=len(body),
        )

    def close(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None
