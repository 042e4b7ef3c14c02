from event_harvester.storage.event_store import (
    EventStore,
    InMemoryEventStore,
    PostgresEventStore,
    PutOutcome,
)
from event_harvester.storage.workflow import (
    PAYLOAD_HARD_LIMIT,
    ExecutionHandle,
    HttpWorkflowExecutor,
    InMemoryWorkflowExecutor,
    WorkflowExecutor,
    serialize_payload,
)

__all__ = [
    "PAYLOAD_HARD_LIMIT",
    "EventStore",
    "ExecutionHandle",
    "HttpWorkflowExecutor",
    "InMemoryEventStore",
    "InMemoryWorkflowExecutor",
    "PostgresEventStore",
    "PutOutcome",
    "WorkflowExecutor",
    "serialize_payload",
]
