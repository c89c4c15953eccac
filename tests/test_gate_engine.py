"""
Tests: Approval ledger and gate engine.

Covers:
  1. idempotent upsert per (step, role, approver) with append-only history
  2. latest-per-role across approvers, including the id tie-break
  3. status derivation for multi-role gates (order-independent rejection)
  4. role selection: hint, person seat, pool seat, organizational override
  5. decision errors: unknown approver/step/role, non-gate, ineligible, bad value
  6. gate lock, lifecycle actions and approval rounds
  7. the "approvals waiting on me" queue
"""

from datetime import datetime, timedelta, timezone

import pytest

from segflow.core.exceptions import IneligibleError, NotFoundError, ValidationError
from segflow.models import db as _db
from segflow.models.approval import Approval, ApprovalEvent
from segflow.models.segment import Step
from segflow.models.vocabulary import EligibilityBasis
from segflow.services import approval_ledger, gate_service, seat_service

TWO_ROLE_TEMPLATE = [
    {"key": "review", "name": "Joint Review", "phase": "pre", "duration_days": 1,
     "gate_roles": ["script_editor", "director"]},
    {"key": "record", "name": "Recording", "phase": "production"},
    {"key": "edit", "name": "Edit", "phase": "post", "duration_days": 2},
]


def _step(segment: dict, key: str) -> dict:
    return next(s for s in segment["steps"] if s["key"] == key)


def _status(step_id: int) -> str:
    return gate_service.effective_status(_db.session.get(Step, step_id))


# ── Pure derivation ──────────────────────────────────────────────────────────


class TestDerivation:
    def test_no_decisions_is_not_started(self):
        assert gate_service.derive_status(["a", "b"], {}) == "not_started"

    def test_partial_approval_is_in_progress(self):
        assert gate_service.derive_status(["a", "b"], {"a": "approved"}) == "in_progress"

    def test_all_approved_is_complete(self):
        assert gate_service.derive_status(["a", "b"], {"a": "approved", "b": "approved"}) == "complete"

    def test_any_rejection_wins(self):
        assert gate_service.derive_status(["a", "b"], {"a": "approved", "b": "rejected"}) == "rejected"
        assert gate_service.derive_status(["a", "b"], {"a": "rejected"}) == "rejected"

    def test_open_explicit_marker_counts_as_in_progress(self):
        assert gate_service.derive_status(["a"], {}, "awaiting_approvals") == "in_progress"

    def test_decisions_for_unrequired_roles_are_ignored(self):
        assert gate_service.derive_status(["a"], {"b": "rejected", "a": "approved"}) == "complete"

    def test_explicit_status_wins(self):
        assert gate_service.resolve_effective(True, "changes_requested", "complete") == "changes_requested"

    def test_open_marker_yields_to_terminal_derived(self):
        assert gate_service.resolve_effective(True, "awaiting_approvals", "complete") == "complete"
        assert gate_service.resolve_effective(True, "in_progress", "rejected") == "rejected"
        assert gate_service.resolve_effective(True, "awaiting_approvals", "in_progress") == "awaiting_approvals"

    def test_non_gate_uses_only_explicit(self):
        assert gate_service.resolve_effective(False, None, "complete") == "not_started"
        assert gate_service.resolve_effective(False, "in_progress", "not_started") == "in_progress"


@pytest.mark.parametrize("approved, total, pct", [(0, 0, 0), (1, 2, 50), (1, 3, 33), (2, 3, 67), (1, 8, 13), (4, 4, 100)])
def test_progress_rounds_half_up(approved, total, pct):
    assert gate_service.progress_pct(approved, total) == pct


# ── Ledger ───────────────────────────────────────────────────────────────────


def test_repeat_decision_upserts_single_row(make_segment, crew):
    seg = make_segment()
    step_id = _step(seg, "script_approval")["id"]

    first = gate_service.decide(step_id, crew["script_editor"].id, "approved")
    first_at = first.approval.decided_at
    second = gate_service.decide(step_id, crew["script_editor"].id, "approved", comment="still good")

    rows = Approval.query.filter_by(step_id=step_id).all()
    assert len(rows) == 1
    assert rows[0].id == first.approval.id
    assert rows[0].comment == "still good"
    assert second.approval.decided_at >= first_at
    assert ApprovalEvent.query.filter_by(step_id=step_id).count() == 2


def test_latest_per_role_spans_approvers(make_segment, crew, make_person):
    seg = make_segment()
    step_id = _step(seg, "script_approval")["id"]
    other = make_person("Second Editor")
    t0 = datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc)

    approval_ledger.record(step_id, "script_editor", crew["script_editor"].id, "approved",
                           basis="person_seat", decided_at=t0)
    approval_ledger.record(step_id, "script_editor", other.id, "rejected",
                           basis="override", decided_at=t0 + timedelta(minutes=5))
    _db.session.commit()

    latest = approval_ledger.latest_per_role(step_id)
    assert latest["script_editor"].approver_id == other.id
    assert latest["script_editor"].decision == "rejected"
    assert "director" not in latest


def test_latest_per_role_breaks_timestamp_ties_by_id(make_segment, crew, make_person):
    seg = make_segment()
    step_id = _step(seg, "script_approval")["id"]
    other = make_person("Tied Editor")
    t0 = datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc)

    approval_ledger.record(step_id, "script_editor", crew["script_editor"].id, "rejected",
                           basis="person_seat", decided_at=t0)
    later_row = approval_ledger.record(step_id, "script_editor", other.id, "approved",
                                       basis="override", decided_at=t0)
    _db.session.commit()

    assert approval_ledger.latest_per_role(step_id)["script_editor"].id == later_row.id


def test_history_is_newest_first_and_keeps_superseded(make_segment, crew):
    seg = make_segment()
    step_id = _step(seg, "script_approval")["id"]
    gate_service.decide(step_id, crew["script_editor"].id, "rejected")
    gate_service.decide(step_id, crew["script_editor"].id, "approved")

    events = approval_ledger.history(step_id)
    assert [e.decision for e in events] == ["approved", "rejected"]
    assert events[0].approver_name_snapshot == "Sam Script"


def test_racing_insert_becomes_update(make_segment, crew, monkeypatch):
    seg = make_segment()
    step_id = _step(seg, "script_approval")["id"]
    editor_id = crew["script_editor"].id
    rival = Approval(
        step_id=step_id,
        role_key="script_editor",
        approver_id=editor_id,
        decision="rejected",
        basis="pool_seat",
        decided_at=datetime.now(timezone.utc) - timedelta(minutes=5),
    )
    _db.session.add(rival)
    _db.session.commit()
    rival_id = rival.id

    # the first lookup misses, as if the rival row landed just after it
    real_find = approval_ledger._find
    calls = []

    def _stale_find(*args):
        calls.append(args)
        return None if len(calls) == 1 else real_find(*args)

    monkeypatch.setattr(approval_ledger, "_find", _stale_find)

    approval = approval_ledger.record(step_id, "script_editor", editor_id, "approved", comment="second look")
    _db.session.commit()

    assert len(calls) == 2
    assert approval.id == rival_id
    assert approval.decision == "approved"
    assert approval.comment == "second look"
    assert approval.basis == EligibilityBasis.PERSON_SEAT.value
    assert Approval.query.filter_by(step_id=step_id).count() == 1
    assert ApprovalEvent.query.filter_by(step_id=step_id).count() == 1


# ── Multi-role gates ─────────────────────────────────────────────────────────


def test_two_role_gate_completes_when_both_approve(make_segment, crew):
    seg = make_segment(steps=TWO_ROLE_TEMPLATE)
    step_id = _step(seg, "review")["id"]

    gate_service.decide(step_id, crew["script_editor"].id, "approved")
    assert _status(step_id) == "in_progress"
    assert gate_service.gate_progress(_db.session.get(Step, step_id)) == (1, 2, 50)
    outcome = gate_service.decide(step_id, crew["director"].id, "approved")

    assert outcome.state.status == "complete"
    assert outcome.state.progress == 100


@pytest.mark.parametrize("order", [("script_editor", "director"), ("director", "script_editor")])
def test_two_role_gate_rejected_regardless_of_order(make_segment, crew, order):
    seg = make_segment(steps=TWO_ROLE_TEMPLATE)
    step_id = _step(seg, "review")["id"]
    verdicts = {"script_editor": "approved", "director": "rejected"}

    for role in order:
        gate_service.decide(step_id, crew[role].id, verdicts[role])

    assert _status(step_id) == "rejected"


def test_decision_never_advances_other_steps(make_segment, crew):
    seg = make_segment()
    step_id = _step(seg, "script_approval")["id"]
    gate_service.decide(step_id, crew["script_editor"].id, "approved")

    other = _step(seg, "content_strategy")["id"]
    assert _status(other) == "not_started"


# ── Role selection ───────────────────────────────────────────────────────────


def test_pool_member_acts_with_pool_basis(make_segment, make_person, make_pool):
    seg = make_segment()
    a = make_person("Ana")
    pool = make_pool("Scripts", "script_editor", members=[a])
    seat_service.set_seat(seg["id"], "script_editor", pool_id=pool.id)

    outcome = gate_service.decide(_step(seg, "script_approval")["id"], a.id, "approved")

    assert outcome.basis == "pool_seat"
    assert outcome.role_key == "script_editor"


def test_executive_without_seat_uses_override(make_segment, crew):
    seg = make_segment(steps=TWO_ROLE_TEMPLATE)
    step_id = _step(seg, "review")["id"]
    gate_service.decide(step_id, crew["script_editor"].id, "approved")

    outcome = gate_service.decide(step_id, crew["executive"].id, "approved")

    # first required role without an approval
    assert outcome.role_key == "director"
    assert outcome.basis == "override"
    assert outcome.state.status == "complete"


def test_role_hint_honoured_for_override(make_segment, crew):
    seg = make_segment(steps=TWO_ROLE_TEMPLATE)
    step_id = _step(seg, "review")["id"]
    outcome = gate_service.decide(step_id, crew["executive"].id, "rejected", role_key="script_editor")
    assert outcome.role_key == "script_editor"
    assert outcome.basis == "override"


def test_role_hint_outside_gate_is_not_found(make_segment, crew):
    seg = make_segment()
    with pytest.raises(NotFoundError):
        gate_service.decide(_step(seg, "script_approval")["id"], crew["director"].id, "approved", role_key="director")


def test_unheld_role_hint_falls_back_to_held_seat(make_segment, crew):
    seg = make_segment(steps=TWO_ROLE_TEMPLATE)
    outcome = gate_service.decide(_step(seg, "review")["id"], crew["director"].id, "approved", role_key="script_editor")
    assert outcome.role_key == "director"
    assert outcome.basis == "person_seat"
    assert outcome.approval.role_key == "director"


def test_role_hint_without_any_seat_is_ineligible(make_segment, crew):
    seg = make_segment(steps=TWO_ROLE_TEMPLATE)
    with pytest.raises(IneligibleError):
        gate_service.decide(_step(seg, "review")["id"], crew["outsider"].id, "approved", role_key="script_editor")
    assert Approval.query.count() == 0


def test_outsider_is_ineligible(make_segment, crew):
    seg = make_segment()
    with pytest.raises(IneligibleError):
        gate_service.decide(_step(seg, "script_approval")["id"], crew["outsider"].id, "approved")
    assert Approval.query.count() == 0


def test_unknown_approver_is_not_found(make_segment):
    seg = make_segment()
    with pytest.raises(NotFoundError):
        gate_service.decide(_step(seg, "script_approval")["id"], 424242, "approved")


def test_unknown_step_is_not_found(crew):
    with pytest.raises(NotFoundError):
        gate_service.decide(99999, crew["script_editor"].id, "approved")


def test_non_gate_step_rejects_decisions(make_segment, crew):
    seg = make_segment()
    with pytest.raises(ValidationError):
        gate_service.decide(_step(seg, "idea_drafting")["id"], crew["executive"].id, "approved")


def test_bad_decision_value(make_segment, crew):
    seg = make_segment()
    with pytest.raises(ValidationError):
        gate_service.decide(_step(seg, "script_approval")["id"], crew["script_editor"].id, "maybe")


# ── Gate lock & lifecycle ────────────────────────────────────────────────────


def test_locked_gate_requires_awaiting_approvals(make_segment, crew):
    seg = make_segment()
    step_id = _step(seg, "script_approval")["id"]

    with pytest.raises(ValidationError):
        gate_service.decide(step_id, crew["script_editor"].id, "approved", require_awaiting=True)

    gate_service.transition_step(step_id, "start", crew["script_editor"].id)
    gate_service.transition_step(step_id, "send_for_approvals", crew["script_editor"].id)
    assert _status(step_id) == "awaiting_approvals"

    outcome = gate_service.decide(step_id, crew["script_editor"].id, "approved", require_awaiting=True)
    assert outcome.state.status == "complete"


def test_changes_requested_holds_until_resubmitted(make_segment, crew):
    seg = make_segment()
    step_id = _step(seg, "script_approval")["id"]
    editor = crew["script_editor"].id
    gate_service.transition_step(step_id, "start", editor)
    gate_service.transition_step(step_id, "send_for_approvals", editor)
    gate_service.transition_step(step_id, "request_changes", editor)
    assert _status(step_id) == "changes_requested"

    gate_service.transition_step(step_id, "send_for_approvals", editor)
    assert _status(step_id) == "awaiting_approvals"


def test_reopen_starts_new_round(make_segment, crew):
    seg = make_segment()
    step_id = _step(seg, "script_approval")["id"]
    gate_service.decide(step_id, crew["script_editor"].id, "rejected")
    assert _status(step_id) == "rejected"

    state = gate_service.transition_step(step_id, "reopen", crew["executive"].id)

    assert state.status == "in_progress"
    assert state.latest == {}
    assert len(approval_ledger.history(step_id)) == 1

    outcome = gate_service.decide(step_id, crew["script_editor"].id, "approved")
    assert outcome.state.status == "complete"


def test_reopen_is_privileged(make_segment, crew):
    seg = make_segment()
    step_id = _step(seg, "script_approval")["id"]
    gate_service.decide(step_id, crew["script_editor"].id, "rejected")
    with pytest.raises(IneligibleError):
        gate_service.transition_step(step_id, "reopen", crew["script_editor"].id)


def test_reset_clears_explicit_status(make_segment, crew):
    seg = make_segment()
    step_id = _step(seg, "idea_drafting")["id"]
    gate_service.transition_step(step_id, "start", crew["owner"].id)
    state = gate_service.transition_step(step_id, "reset", crew["executive"].id)
    assert state.status == "not_started"
    assert state.step.status is None


def test_non_gate_lifecycle(make_segment, crew):
    seg = make_segment()
    step_id = _step(seg, "idea_drafting")["id"]
    owner = crew["owner"].id
    assert gate_service.transition_step(step_id, "start", owner).status == "in_progress"
    assert gate_service.transition_step(step_id, "mark_complete", owner).status == "complete"


def test_invalid_transition_rejected(make_segment, crew):
    seg = make_segment()
    step_id = _step(seg, "idea_drafting")["id"]
    with pytest.raises(ValidationError):
        gate_service.transition_step(step_id, "mark_complete", crew["owner"].id)
    with pytest.raises(ValidationError):
        gate_service.transition_step(step_id, "send_for_approvals", crew["owner"].id)


def test_gate_cannot_be_marked_complete_by_hand(make_segment, crew):
    seg = make_segment()
    step_id = _step(seg, "script_approval")["id"]
    gate_service.transition_step(step_id, "start", crew["executive"].id)
    with pytest.raises(ValidationError):
        gate_service.transition_step(step_id, "mark_complete", crew["executive"].id)


def test_outsider_cannot_transition(make_segment, crew):
    seg = make_segment()
    with pytest.raises(IneligibleError):
        gate_service.transition_step(_step(seg, "idea_drafting")["id"], "start", crew["outsider"].id)


def test_unknown_action(make_segment, crew):
    seg = make_segment()
    with pytest.raises(ValidationError):
        gate_service.transition_step(_step(seg, "idea_drafting")["id"], "teleport", crew["executive"].id)


# ── Queue ────────────────────────────────────────────────────────────────────


def test_pending_gates_for_seat_holder(make_segment, crew):
    seg = make_segment()
    pending = gate_service.pending_gates_for(crew["director"].id)
    assert [p["key"] for p in pending] == ["production_complete"]
    assert pending[0]["actionable_roles"] == ["director"]
    assert pending[0]["segment_title"] == seg["title"]

    gate_service.decide(pending[0]["id"], crew["director"].id, "approved")
    assert gate_service.pending_gates_for(crew["director"].id) == []


def test_pending_gates_for_executive_lists_every_open_gate(make_segment, crew):
    make_segment()
    keys = {p["key"] for p in gate_service.pending_gates_for(crew["executive"].id)}
    assert keys == {"script_approval", "content_strategy", "production_complete", "post_final"}


def test_pending_gates_for_outsider_is_empty(make_segment, crew):
    make_segment()
    assert gate_service.pending_gates_for(crew["outsider"].id) == []
