"""ProcessingJob phase state machine tests."""

import pytest

from catalog_processing.errors import PhasePreconditionError
from catalog_processing.models.job import Phase, PhaseStatus, ProcessingJob


def new_job() -> ProcessingJob:
    return ProcessingJob(name="demo", seed_url="https://example.com/", max_depth=1, max_urls=50)


def test_new_job_has_all_phases_not_started():
    job = new_job()
    assert all(job.phase_status(p) == PhaseStatus.NOT_STARTED for p in Phase)
    assert job.configuration.validate_during_mapping is True


def test_phase_order():
    assert Phase.MAPPING.previous() is None
    assert Phase.VALIDATION.previous() == Phase.MAPPING
    assert Phase.ENHANCEMENT.previous() == Phase.EXTRACTION


def test_gated_phase_raises_without_mutating():
    job = new_job()
    before = job.model_dump()

    with pytest.raises(PhasePreconditionError) as exc_info:
        job.begin_phase(Phase.VALIDATION)

    assert exc_info.value.required_phase == "mapping"
    assert exc_info.value.actual_status == "NOT_STARTED"
    assert job.model_dump() == before


def test_failed_predecessor_still_gates():
    job = new_job()
    job.begin_phase(Phase.MAPPING)
    job.fail_phase(Phase.MAPPING, "Discovery failed")

    with pytest.raises(PhasePreconditionError):
        job.check_can_begin(Phase.VALIDATION)
    assert job.phases[Phase.MAPPING].error_message == "Discovery failed"


def test_transitions_record_result_and_times():
    job = new_job()
    job.begin_phase(Phase.MAPPING)
    assert job.mapping_status == PhaseStatus.RUNNING
    assert job.phases[Phase.MAPPING].started_at is not None

    job.complete_phase(Phase.MAPPING, "result-1")
    job.begin_phase(Phase.VALIDATION)
    job.cancel_phase(Phase.VALIDATION)

    assert job.mapping_status == PhaseStatus.COMPLETED
    assert job.phases[Phase.MAPPING].result_id == "result-1"
    assert job.validation_status == PhaseStatus.CANCELLED
    assert job.phases[Phase.VALIDATION].finished_at is not None

    # A cancelled phase may be re-run
    job.begin_phase(Phase.VALIDATION)
    assert job.validation_status == PhaseStatus.RUNNING
    assert job.phases[Phase.VALIDATION].finished_at is None


def test_json_round_trip():
    job = new_job()
    job.begin_phase(Phase.MAPPING)
    job.complete_phase(Phase.MAPPING, "result-1")
    job.statistics.content_types = {"text/html": 3}

    restored = ProcessingJob.model_validate_json(job.model_dump_json())

    assert restored == job
    assert restored.mapping_status is PhaseStatus.COMPLETED
