"""Unit tests for the pricing job state machine."""

from __future__ import annotations

import pytest

from pricebook.jobs.state import ALLOWED_TRANSITIONS, can_transition, is_active, is_terminal
from pricebook.models import JobStatus


class TestTransitions:
    def test_happy_path(self):
        assert can_transition(JobStatus.PENDING, JobStatus.PROCESSING)
        assert can_transition(JobStatus.PROCESSING, JobStatus.COMPLETED)
        assert can_transition(JobStatus.PROCESSING, JobStatus.FAILED)

    def test_pending_cannot_complete_directly(self):
        assert not can_transition(JobStatus.PENDING, JobStatus.COMPLETED)

    @pytest.mark.parametrize(
        "terminal", [JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED]
    )
    def test_terminal_states_have_no_exits(self, terminal):
        assert ALLOWED_TRANSITIONS[terminal] == frozenset()
        for target in JobStatus:
            assert not can_transition(terminal, target)

    def test_nothing_enters_cancelled(self):
        assert all(JobStatus.CANCELLED not in targets for targets in ALLOWED_TRANSITIONS.values())

    def test_accepts_strings(self):
        assert can_transition("pending", "processing")
        assert not can_transition("completed", "processing")

    def test_unknown_status_raises(self):
        with pytest.raises(ValueError):
            can_transition("paused", "processing")


class TestStatusGroups:
    def test_terminal(self):
        assert is_terminal("completed")
        assert is_terminal(JobStatus.FAILED)
        assert not is_terminal(JobStatus.PROCESSING)

    def test_active(self):
        assert is_active("pending")
        assert is_active(JobStatus.PROCESSING)
        assert not is_active(JobStatus.CANCELLED)
