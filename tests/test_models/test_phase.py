"""
Tests for the Job Phase Model

Tests cover:
- Priority table and processability
- Parsing raw phase input (names, SDK codes, garbage)
- Forward successors
- Transition rules
"""

import pytest

from acp_seller.models.phase import (
    CANCELLED_PHASES,
    PHASE_PRIORITIES,
    TERMINAL_PHASES,
    JobPhase,
    can_transition,
    is_processable,
    next_phase,
    parse_phase,
    priority,
)


class TestPriority:
    """Tests for the priority table."""

    @pytest.mark.parametrize(
        "phase,expected",
        [
            (JobPhase.EVALUATION, 20),
            (JobPhase.TRANSACTION, 15),
            (JobPhase.NEGOTIATION, 10),
            (JobPhase.REQUEST, 5),
            (JobPhase.COMPLETED, 0),
            (JobPhase.REJECTED, 0),
            (JobPhase.EXPIRED, 0),
            (JobPhase.UNKNOWN, 0),
        ],
    )
    def test_priority_table(self, phase, expected):
        assert priority(phase) == expected

    def test_table_is_exhaustive(self):
        """Every phase has an entry."""
        assert set(PHASE_PRIORITIES) == set(JobPhase)

    def test_processable_iff_positive_priority(self):
        for phase in JobPhase:
            assert is_processable(phase) == (priority(phase) > 0)

    def test_terminal_phases_not_processable(self):
        for phase in TERMINAL_PHASES:
            assert phase.is_terminal
            assert not is_processable(phase)

    def test_unknown_is_not_terminal(self):
        assert not JobPhase.UNKNOWN.is_terminal
        assert not is_processable(JobPhase.UNKNOWN)


class TestParsePhase:
    """Tests for parse_phase."""

    def test_passes_enum_through(self):
        assert parse_phase(JobPhase.TRANSACTION) is JobPhase.TRANSACTION

    @pytest.mark.parametrize("raw", ["transaction", "TRANSACTION", "  Transaction "])
    def test_names_in_any_case(self, raw):
        assert parse_phase(raw) == JobPhase.TRANSACTION

    @pytest.mark.parametrize(
        "code,expected",
        [
            (0, JobPhase.REQUEST),
            (1, JobPhase.NEGOTIATION),
            (2, JobPhase.TRANSACTION),
            (3, JobPhase.EVALUATION),
            (4, JobPhase.COMPLETED),
            (5, JobPhase.REJECTED),
            (6, JobPhase.EXPIRED),
        ],
    )
    def test_sdk_numeric_codes(self, code, expected):
        assert parse_phase(code) == expected

    def test_numeric_strings(self):
        assert parse_phase("3") == JobPhase.EVALUATION

    @pytest.mark.parametrize("raw", ["shipping", 7, -1, 2.5, None, True, ["request"]])
    def test_garbage_maps_to_unknown(self, raw):
        """Unrecognised input never raises."""
        assert parse_phase(raw) == JobPhase.UNKNOWN


class TestNextPhase:
    """Tests for forward successors."""

    @pytest.mark.parametrize(
        "phase,expected",
        [
            (JobPhase.REQUEST, JobPhase.NEGOTIATION),
            (JobPhase.NEGOTIATION, JobPhase.TRANSACTION),
            (JobPhase.TRANSACTION, JobPhase.EVALUATION),
            (JobPhase.EVALUATION, JobPhase.COMPLETED),
        ],
    )
    def test_forward_path(self, phase, expected):
        assert next_phase(phase) == expected

    def test_skip_evaluation_finishes_after_transaction(self):
        assert next_phase(JobPhase.TRANSACTION, skip_evaluation=True) == JobPhase.COMPLETED

    def test_skip_evaluation_only_affects_transaction(self):
        assert next_phase(JobPhase.REQUEST, skip_evaluation=True) == JobPhase.NEGOTIATION

    @pytest.mark.parametrize("phase", [*TERMINAL_PHASES, JobPhase.UNKNOWN])
    def test_no_successor_raises(self, phase):
        with pytest.raises(ValueError):
            next_phase(phase)


class TestCanTransition:
    """Tests for the transition rules."""

    def test_single_forward_step(self):
        assert can_transition(JobPhase.REQUEST, JobPhase.NEGOTIATION)

    def test_skip_ahead_forward(self):
        assert can_transition(JobPhase.REQUEST, JobPhase.EVALUATION)

    def test_backward_rejected(self):
        assert not can_transition(JobPhase.EVALUATION, JobPhase.TRANSACTION)

    def test_same_phase_is_not_a_transition(self):
        assert not can_transition(JobPhase.TRANSACTION, JobPhase.TRANSACTION)

    @pytest.mark.parametrize("target", sorted(CANCELLED_PHASES))
    def test_any_active_phase_may_be_cancelled(self, target):
        for phase in (JobPhase.REQUEST, JobPhase.NEGOTIATION, JobPhase.TRANSACTION, JobPhase.EVALUATION):
            assert can_transition(phase, target)

    def test_terminal_phases_are_final(self):
        for current in TERMINAL_PHASES:
            for target in JobPhase:
                assert not can_transition(current, target)

    def test_unknown_only_leaves_by_cancellation(self):
        assert can_transition(JobPhase.UNKNOWN, JobPhase.REJECTED)
        assert not can_transition(JobPhase.UNKNOWN, JobPhase.TRANSACTION)
        assert not can_transition(JobPhase.REQUEST, JobPhase.UNKNOWN)
