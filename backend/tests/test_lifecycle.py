import pytest

from leadflow.modules.enrichment.constants import ErrorStage, LeadPhase, LeadStatus
from leadflow.modules.enrichment.lifecycle import (
    ALLOWED_PHASES,
    PREDECESSORS,
    can_transition,
    completion_timestamp_field,
    failed_status_for,
    is_allowed_pair,
    parse_status,
    phases_up_to,
    resolve_phase,
    statuses_allowing_phase,
)
from leadflow.shared.utils.exceptions import InvalidTransitionError, UnknownValueError


def test_every_status_has_phases_and_predecessors():
    for status in LeadStatus:
        assert ALLOWED_PHASES[status], status
        assert PREDECESSORS[status], status


@pytest.mark.parametrize("status, field", [
    ("findymail_enriched", "findymail_enriched_at"),
    ("ai_enriched", "ai_enriched_at"),
    ("uploaded", "uploaded_at"),
    ("pending", None),
    ("ai_failed", None),
])
def test_completion_timestamp_field(status, field):
    assert completion_timestamp_field(status) == field


@pytest.mark.parametrize("stage, status", [
    ("ingestion", LeadStatus.INGESTION_FAILED),
    ("findymail", LeadStatus.FINDYMAIL_FAILED),
    ("ai_enrichment", LeadStatus.AI_FAILED),
    ("upload", LeadStatus.UPLOAD_FAILED),
])
def test_failed_status_for_stage(stage, status):
    assert failed_status_for(stage) == status
    assert failed_status_for(ErrorStage(stage)) == status


def test_unknown_values_are_rejected():
    with pytest.raises(UnknownValueError):
        parse_status("enriched")
    with pytest.raises(UnknownValueError):
        failed_status_for("scraping")
    with pytest.raises(UnknownValueError):
        is_allowed_pair("pending", "done")


def test_unknown_value_error_is_a_value_error():
    with pytest.raises(ValueError):
        parse_status("nope")


def test_allowed_pairs():
    assert is_allowed_pair("pending", "pending")
    assert is_allowed_pair("findymail_enriched", "researching")
    assert is_allowed_pair("ai_enriched", "completed")
    assert not is_allowed_pair("ai_failed", "completed")
    assert not is_allowed_pair("pending", "scraping")
    assert not is_allowed_pair("uploaded", "pending")


def test_transitions_follow_the_pipeline():
    assert can_transition("pending", "findymail_enriched")
    assert can_transition("pending", "findymail_failed")
    assert can_transition("findymail_failed", "findymail_enriched")
    assert can_transition("findymail_enriched", "ai_enriched")
    assert can_transition("ai_enriched", "uploaded")
    assert can_transition("findymail_enriched", "findymail_enriched")

    assert not can_transition("pending", "uploaded")
    assert not can_transition("uploaded", "pending")
    assert not can_transition("ai_failed", "findymail_enriched")


def test_resolve_phase():
    # Single allowed phase is implied
    assert resolve_phase("ai_enriched") == LeadPhase.COMPLETED
    assert resolve_phase("findymail_failed") == LeadPhase.PENDING
    # Several allowed: keep the current one
    assert resolve_phase("findymail_enriched") is None
    assert resolve_phase("findymail_enriched", "qualifying") == LeadPhase.QUALIFYING

    with pytest.raises(InvalidTransitionError):
        resolve_phase("ai_failed", "completed")


def test_phase_helpers():
    assert phases_up_to("pending") == {LeadPhase.PENDING}
    assert phases_up_to("researching") == {LeadPhase.PENDING, LeadPhase.SCRAPING, LeadPhase.RESEARCHING}
    assert statuses_allowing_phase("completed") == {
        LeadStatus.AI_ENRICHED, LeadStatus.UPLOADED, LeadStatus.UPLOAD_FAILED,
    }


def test_failed_statuses():
    assert LeadStatus.is_failed("ai_failed")
    assert not LeadStatus.is_failed("ai_enriched")
    assert len(LeadStatus.failed_statuses()) == 4
