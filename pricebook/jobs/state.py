"""Pricing job state machine.

    pending -> processing -> completed | failed

``cancelled`` is a valid status but nothing in this package moves a job into
it. Terminal states have no outgoing transitions. The store enforces these
rules with conditional UPDATEs; this module names them.
"""

from __future__ import annotations

from pricebook.models import ACTIVE_STATUSES, TERMINAL_STATUSES, JobStatus

ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.PROCESSING, JobStatus.FAILED}),
    JobStatus.PROCESSING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
    JobStatus.CANCELLED: frozenset(),
}


def can_transition(current: JobStatus | str, target: JobStatus | str) -> bool:
    return JobStatus(target) in ALLOWED_TRANSITIONS[JobStatus(current)]


def is_terminal(status: JobStatus | str) -> bool:
    return JobStatus(status) in TERMINAL_STATUSES


def is_active(status: JobStatus | str) -> bool:
    return JobStatus(status) in ACTIVE_STATUSES
