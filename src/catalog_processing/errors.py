"""Typed errors raised across the catalog processing control surface."""

from typing import Optional


class CatalogError(Exception):
    """Base class for catalog processing errors."""


class JobNotFoundError(CatalogError):
    """Raised when a job id does not resolve to a stored job."""

    def __init__(self, job_id: str):
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class ProjectNotFoundError(CatalogError):
    """Raised when a discovery project id does not resolve to a stored project."""

    def __init__(self, project_id: str):
        super().__init__(f"Project not found: {project_id}")
        self.project_id = project_id


class JobAlreadyRunningError(CatalogError):
    """Raised when a second execution is requested for a job that has one."""

    def __init__(self, job_id: str):
        super().__init__(f"Job already running: {job_id}")
        self.job_id = job_id


class PhasePreconditionError(CatalogError):
    """Raised when a phase is started before its predecessor completed."""

    def __init__(
        self,
        job_id: str,
        phase: str,
        *,
        required_phase: Optional[str] = None,
        actual_status: Optional[str] = None,
    ):
        message = f"Cannot start {phase} for job {job_id}"
        if required_phase:
            message += f": {required_phase} must be COMPLETED (is {actual_status})"
        super().__init__(message)
        self.job_id = job_id
        self.phase = phase
        self.required_phase = required_phase
        self.actual_status = actual_status


class InvalidUrlError(CatalogError, ValueError):
    """Raised when a seed URL fails the syntax check."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"Invalid URL {url!r}: {reason}")
        self.url = url
        self.reason = reason
