"""Processing job and phase state models."""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from ..errors import PhasePreconditionError
from .recon import ReconnaissanceHints


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PhaseStatus(str, Enum):
    """Status of a single processing phase. Transitions controlled by the orchestrator."""

    NOT_STARTED = "NOT_STARTED"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"  # terminal
    FAILED = "FAILED"  # terminal
    CANCELLED = "CANCELLED"  # terminal


class Phase(str, Enum):
    """Processing phases in lifecycle order."""

    MAPPING = "mapping"
    VALIDATION = "validation"
    EXTRACTION = "extraction"
    ENHANCEMENT = "enhancement"

    def previous(self) -> Optional["Phase"]:
        """Phase that must be COMPLETED before this one may run."""
        order = list(Phase)
        idx = order.index(self)
        return order[idx - 1] if idx > 0 else None


class PhaseState(BaseModel):
    """Status and result pointer for one phase of a job."""

    status: PhaseStatus = PhaseStatus.NOT_STARTED
    result_id: Optional[str] = None
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None


class JobConfiguration(BaseModel):
    """Per-job knobs. `extra` holds open-ended tags only."""

    validate_during_mapping: bool = True
    concurrent_validations: int = Field(default=10, ge=1)
    extract_metadata: bool = True
    enhance_with_ai: bool = False
    site_map_project_id: Optional[str] = None
    advisor_analysis: Optional[ReconnaissanceHints] = None
    extra: dict[str, Any] = Field(default_factory=dict)


class JobStatistics(BaseModel):
    """Aggregate counters written when phases finish."""

    total_urls_found: int = 0
    valid_urls: int = 0
    invalid_urls: int = 0
    estimated_url_count: Optional[int] = None
    content_types: dict[str, int] = Field(default_factory=dict)
    asset_types: dict[str, int] = Field(default_factory=dict)
    extracted_pages: int = 0
    enhanced_assets: int = 0
    extra: dict[str, Any] = Field(default_factory=dict)


class ProcessingJob(BaseModel):
    """
    One catalog run for a seed URL.
    Mutated by the orchestrator only; never deleted automatically.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    seed_url: str
    max_depth: int = Field(ge=0)
    max_urls: int = Field(ge=1)
    created_at: datetime = Field(default_factory=utcnow)
    last_modified: datetime = Field(default_factory=utcnow)
    phases: dict[Phase, PhaseState] = Field(
        default_factory=lambda: {phase: PhaseState() for phase in Phase}
    )
    configuration: JobConfiguration = Field(default_factory=JobConfiguration)
    statistics: JobStatistics = Field(default_factory=JobStatistics)

    def touch(self) -> None:
        self.last_modified = utcnow()

    def phase_state(self, phase: Phase) -> PhaseState:
        return self.phases.setdefault(phase, PhaseState())

    def phase_status(self, phase: Phase) -> PhaseStatus:
        return self.phase_state(phase).status

    @property
    def mapping_status(self) -> PhaseStatus:
        return self.phase_status(Phase.MAPPING)

    @property
    def validation_status(self) -> PhaseStatus:
        return self.phase_status(Phase.VALIDATION)

    @property
    def extraction_status(self) -> PhaseStatus:
        return self.phase_status(Phase.EXTRACTION)

    @property
    def enhancement_status(self) -> PhaseStatus:
        return self.phase_status(Phase.ENHANCEMENT)

    def check_can_begin(self, phase: Phase) -> None:
        """Raise PhasePreconditionError unless the preceding phase is COMPLETED."""
        required = phase.previous()
        if required is None:
            return
        actual = self.phase_status(required)
        if actual != PhaseStatus.COMPLETED:
            raise PhasePreconditionError(
                self.id,
                phase.value,
                required_phase=required.value,
                actual_status=actual.value,
            )

    def begin_phase(self, phase: Phase) -> None:
        self.check_can_begin(phase)
        state = self.phase_state(phase)
        state.status = PhaseStatus.RUNNING
        state.error_message = None
        state.started_at = utcnow()
        state.finished_at = None
        self.touch()

    def complete_phase(self, phase: Phase, result_id: str) -> None:
        self._finish(phase, PhaseStatus.COMPLETED, result_id=result_id)

    def cancel_phase(self, phase: Phase, result_id: Optional[str] = None) -> None:
        self._finish(phase, PhaseStatus.CANCELLED, result_id=result_id)

    def fail_phase(self, phase: Phase, error_message: str, result_id: Optional[str] = None) -> None:
        self._finish(phase, PhaseStatus.FAILED, result_id=result_id, error_message=error_message)

    def _finish(
        self,
        phase: Phase,
        status: PhaseStatus,
        result_id: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> None:
        state = self.phase_state(phase)
        state.status = status
        if result_id:
            state.result_id = result_id
        state.error_message = error_message
        state.finished_at = utcnow()
        self.touch()
