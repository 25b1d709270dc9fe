"""Formation workflow execution: step handlers, engine and orchestrator."""

from pyformation.executor.engine import StepEngine, parse_step_id
from pyformation.executor.locks import KeyedLocks, ReservationSet
from pyformation.executor.orchestrator import WorkflowOrchestrator, validate_entity
from pyformation.executor.steps import StepContext, StepOutcome, run_step

__all__ = [
    "KeyedLocks",
    "ReservationSet",
    "StepContext",
    "StepEngine",
    "StepOutcome",
    "WorkflowOrchestrator",
    "parse_step_id",
    "run_step",
    "validate_entity",
]
