"""
Lead lifecycle tables.

A lead's state is the pair (status, current_phase). Every write goes through
these tables, so an inconsistent pair such as (ai_failed, completed) can never
be stored.

Pure functions only; the repository turns them into conditional UPDATEs.
"""
from typing import Dict, FrozenSet, Optional

from leadflow.modules.enrichment.constants import ErrorStage, LeadPhase, LeadStatus
from leadflow.shared.utils.exceptions import InvalidTransitionError, UnknownValueError

_IN_PROGRESS_PHASES = frozenset({
    LeadPhase.PENDING,
    LeadPhase.SCRAPING,
    LeadPhase.RESEARCHING,
    LeadPhase.QUALIFYING,
    LeadPhase.GENERATING,
})

# Phases each status may be paired with
ALLOWED_PHASES: Dict[LeadStatus, FrozenSet[LeadPhase]] = {
    LeadStatus.PENDING: frozenset({LeadPhase.PENDING}),
    LeadStatus.INGESTION_FAILED: frozenset({LeadPhase.PENDING}),
    LeadStatus.FINDYMAIL_ENRICHED: _IN_PROGRESS_PHASES,
    LeadStatus.FINDYMAIL_FAILED: frozenset({LeadPhase.PENDING}),
    LeadStatus.AI_ENRICHED: frozenset({LeadPhase.COMPLETED}),
    LeadStatus.AI_FAILED: _IN_PROGRESS_PHASES,
    LeadStatus.UPLOADED: frozenset({LeadPhase.COMPLETED}),
    LeadStatus.UPLOAD_FAILED: frozenset({LeadPhase.COMPLETED}),
}

# Statuses a lead may move *from* to reach each status.
# Self-loops make re-writes idempotent; failed statuses lead back into their stage.
PREDECESSORS: Dict[LeadStatus, FrozenSet[LeadStatus]] = {
    LeadStatus.PENDING: frozenset({LeadStatus.PENDING, LeadStatus.INGESTION_FAILED}),
    LeadStatus.INGESTION_FAILED: frozenset({LeadStatus.PENDING, LeadStatus.INGESTION_FAILED}),
    LeadStatus.FINDYMAIL_ENRICHED: frozenset({
        LeadStatus.PENDING, LeadStatus.FINDYMAIL_FAILED, LeadStatus.FINDYMAIL_ENRICHED,
    }),
    LeadStatus.FINDYMAIL_FAILED: frozenset({LeadStatus.PENDING, LeadStatus.FINDYMAIL_FAILED}),
    LeadStatus.AI_ENRICHED: frozenset({
        LeadStatus.FINDYMAIL_ENRICHED, LeadStatus.AI_FAILED, LeadStatus.AI_ENRICHED,
    }),
    LeadStatus.AI_FAILED: frozenset({LeadStatus.FINDYMAIL_ENRICHED, LeadStatus.AI_FAILED}),
    LeadStatus.UPLOADED: frozenset({
        LeadStatus.AI_ENRICHED, LeadStatus.UPLOAD_FAILED, LeadStatus.UPLOADED,
    }),
    LeadStatus.UPLOAD_FAILED: frozenset({LeadStatus.AI_ENRICHED, LeadStatus.UPLOAD_FAILED}),
}

# Success statuses and the timestamp column each one stamps (once)
COMPLETION_TIMESTAMP_FIELDS: Dict[LeadStatus, str] = {
    LeadStatus.FINDYMAIL_ENRICHED: "findymail_enriched_at",
    LeadStatus.AI_ENRICHED: "ai_enriched_at",
    LeadStatus.UPLOADED: "uploaded_at",
}

FAILED_STATUS_BY_STAGE: Dict[ErrorStage, LeadStatus] = {
    ErrorStage.INGESTION: LeadStatus.INGESTION_FAILED,
    ErrorStage.FINDYMAIL: LeadStatus.FINDYMAIL_FAILED,
    ErrorStage.AI_ENRICHMENT: LeadStatus.AI_FAILED,
    ErrorStage.UPLOAD: LeadStatus.UPLOAD_FAILED,
}


def parse_status(value) -> LeadStatus:
    try:
        return LeadStatus(value)
    except ValueError:
        raise UnknownValueError("lead status", value, [s.value for s in LeadStatus])


def parse_phase(value) -> LeadPhase:
    try:
        return LeadPhase(value)
    except ValueError:
        raise UnknownValueError("lead phase", value, [p.value for p in LeadPhase])


def parse_stage(value) -> ErrorStage:
    try:
        return ErrorStage(value)
    except ValueError:
        raise UnknownValueError("error stage", value, [s.value for s in ErrorStage])


def completion_timestamp_field(status) -> Optional[str]:
    """Timestamp column stamped when a lead first reaches `status`, or None."""
    return COMPLETION_TIMESTAMP_FIELDS.get(parse_status(status))


def failed_status_for(stage) -> LeadStatus:
    return FAILED_STATUS_BY_STAGE[parse_stage(stage)]


def is_allowed_pair(status, phase) -> bool:
    return parse_phase(phase) in ALLOWED_PHASES[parse_status(status)]


def can_transition(current, target) -> bool:
    return parse_status(current) in PREDECESSORS[parse_status(target)]


def resolve_phase(status, phase=None) -> Optional[LeadPhase]:
    """
    Phase to write alongside `status`.

    An explicit phase must be allowed for the status. Without one, a status
    with a single allowed phase implies it; otherwise None (keep the current
    phase, which the caller must check).
    """
    target = parse_status(status)
    allowed = ALLOWED_PHASES[target]
    if phase is not None:
        resolved = parse_phase(phase)
        if resolved not in allowed:
            raise InvalidTransitionError(
                "Lead", None, resolved.value, target.value,
                message=f"Phase '{resolved.value}' is not valid for status '{target.value}'."
            )
        return resolved
    if len(allowed) == 1:
        return next(iter(allowed))
    return None


def statuses_allowing_phase(phase) -> FrozenSet[LeadStatus]:
    """Statuses that may be paired with `phase`."""
    target = parse_phase(phase)
    return frozenset(status for status, phases in ALLOWED_PHASES.items() if target in phases)


def phases_up_to(phase) -> FrozenSet[LeadPhase]:
    """`phase` and every phase before it."""
    target = parse_phase(phase)
    ordered = LeadPhase.ordered()
    return frozenset(ordered[:ordered.index(target) + 1])


def as_values(items) -> list:
    """Enum members → raw strings, for SQL IN clauses."""
    return sorted(item.value for item in items)
