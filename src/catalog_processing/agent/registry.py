"""Job registry - the single table of active executions and their cancellation tokens."""

import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from ..cancellation import CancellationToken
from ..errors import JobAlreadyRunningError
from ..models.job import Phase, utcnow
from ..models.processing_result import CatalogProcessingResult
from ..tools.aggregate_tool import ResultAggregator

logger = logging.getLogger(__name__)


@dataclass
class Execution:
    """One running phase of one job."""

    job_id: str
    phase: Phase
    token: CancellationToken = field(default_factory=CancellationToken)
    future: Optional[Future] = None
    aggregator: Optional[ResultAggregator] = None
    started_at: datetime = field(default_factory=utcnow)


class JobRegistry:
    """
    Exclusive registration per job id. register() is the only way an execution
    comes into being, so no two executions for one job can overlap.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._executions: dict[str, Execution] = {}

    def register(self, job_id: str, phase: Phase) -> Execution:
        with self._lock:
            if job_id in self._executions:
                raise JobAlreadyRunningError(job_id)
            execution = Execution(job_id=job_id, phase=phase)
            self._executions[job_id] = execution
        logger.debug("Registered %s execution for job %s", phase.value, job_id)
        return execution

    def attach(
        self,
        execution: Execution,
        future: Optional[Future] = None,
        aggregator: Optional[ResultAggregator] = None,
    ) -> None:
        with self._lock:
            if future is not None:
                execution.future = future
            if aggregator is not None:
                execution.aggregator = aggregator

    def release(self, job_id: str, execution: Optional[Execution] = None) -> None:
        """Drop the job's slot; with execution given, only if it still owns the slot."""
        with self._lock:
            current = self._executions.get(job_id)
            if current is not None and (execution is None or current is execution):
                del self._executions[job_id]
                logger.debug("Released execution for job %s", job_id)

    def get(self, job_id: str) -> Optional[Execution]:
        with self._lock:
            return self._executions.get(job_id)

    def is_registered(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._executions

    def stop(self, job_id: str) -> bool:
        """Signal the job's token. False when nothing is registered for it."""
        execution = self.get(job_id)
        if execution is None:
            return False
        execution.token.cancel()
        logger.info("Stop requested for job %s (%s)", job_id, execution.phase.value)
        return True

    def live_result(self, job_id: str) -> Optional[CatalogProcessingResult]:
        execution = self.get(job_id)
        if execution is None or execution.aggregator is None:
            return None
        return execution.aggregator.snapshot()

    def stop_all(self) -> list[Execution]:
        with self._lock:
            executions = list(self._executions.values())
        for execution in executions:
            execution.token.cancel()
        return executions

    def clear(self) -> None:
        with self._lock:
            self._executions.clear()
