"""Tests for the change lifecycle manager.

Covers:
- routing: high-risk and unknown edits become reviews, others draft groups
- analysis settling onto reviews and every draft of a group
- accept / dismiss / contact / accept_workaround transitions and guards
- late analyses for entries the user already closed
- evaluation failures surfacing as an `error` analysis
- out-of-order completion of concurrent evaluations
- undo, set_resolution, apply_all gating, discard_all, processing flag
"""

from __future__ import annotations

import asyncio

import pytest

from taxonomy_governance.config import GatewayConfig
from taxonomy_governance.decision import DecisionService
from taxonomy_governance.lifecycle import (
    AnalysisStatus,
    ChangeLifecycleManager,
    DraftGroup,
    HighRiskReview,
    InvalidTransition,
    ProcessingInProgress,
    Resolution,
    ReviewState,
    UnknownEntry,
)
from taxonomy_governance.operations import NodeLevel, OperationType, Verdict
from taxonomy_governance.policy_engine import PolicyEvaluator
from taxonomy_governance.workarounds import IncompleteWorkaround

CLEAN_RENAME = {"currentName": "Unknown Error", "newName": "Scheduling Error Messages"}
CROSS_THEME_RENAME = {
    "currentName": "Unknown Error",
    "newName": "One Click Join",
    "parentThemeName": "Scheduling Blocked by Error Messages",
    "crossThemeSubThemes": [{"name": "One Click Join", "parentTheme": "Easy Joining"}],
}
UNRELATED_MERGE = {
    "sourceName": "Refund Delays",
    "destinationName": "Frozen Video",
    "sourceParentTheme": "Billing",
    "destinationParentTheme": "Video Quality",
}
CLEAN_SPLIT = {"currentName": "Errors", "proposedSplits": ["Login Errors", "Sync Errors"]}


class FakeAudit:
    def __init__(self):
        self.actions = []

    def log_event(self, actor_id, action_type, intent_payload):
        self.actions.append(action_type)
        return len(self.actions)


class ExplodingDecision:
    async def evaluate(self, operation_type, context=None, actor_id="operator"):
        raise RuntimeError("backend exploded")


class GatedDecision:
    """Holds each evaluation until the test opens the gate for its operation."""

    def __init__(self, ops):
        self.gates = {op: asyncio.Event() for op in ops}
        self.evaluator = PolicyEvaluator()

    async def evaluate(self, operation_type, context=None, actor_id="operator"):
        await self.gates[operation_type].wait()
        return self.evaluator.evaluate(operation_type, context)


def _manager(**kwargs) -> ChangeLifecycleManager:
    kwargs.setdefault("decision", DecisionService(config=GatewayConfig()))
    kwargs.setdefault("processing_estimate", "2-3 hours")
    return ChangeLifecycleManager(**kwargs)


def _run(scenario):
    return asyncio.run(scenario())


# ---------------------------------------------------------------------------
# Initiation and settling
# ---------------------------------------------------------------------------

class TestInitiate:
    def test_high_risk_edit_becomes_review(self):
        async def scenario():
            manager = _manager()
            entry = manager.initiate("st-1", "Refund Delays", "SubTheme", "merge-subtheme", UNRELATED_MERGE)
            assert isinstance(entry, HighRiskReview)
            assert entry.state is ReviewState.ANALYZING
            assert entry.analysis.status is AnalysisStatus.ANALYZING
            assert manager.pending_reviews() == [entry]
            assert manager.drafts() == []

            await manager.settle()
            assert entry.state is ReviewState.RESOLVED
            assert entry.analysis.verdict is Verdict.REJECT
            assert entry.analysis.status is AnalysisStatus.FAIL
        _run(scenario)

    def test_low_risk_edit_lands_as_drafts_immediately(self):
        async def scenario():
            manager = _manager()
            entry = manager.initiate("st-1", "Unknown Error", NodeLevel.SUBTHEME, "rename-subtheme", CLEAN_RENAME)
            assert isinstance(entry, DraftGroup)
            (change,) = manager.drafts()
            assert change.group_id == entry.id
            assert (change.field, change.old_value, change.new_value) == (
                "name", "Unknown Error", "Scheduling Error Messages",
            )
            assert change.analysis.status is AnalysisStatus.ANALYZING

            await manager.settle()
            assert change.analysis.verdict is Verdict.APPROVE
            assert change.analysis.status is AnalysisStatus.PASS
            assert manager.pending_reviews() == []
        _run(scenario)

    def test_every_draft_of_a_group_gets_the_analysis(self):
        async def scenario():
            manager = _manager()
            manager.initiate("t-1", "Easy Joining", "Theme", "change-theme-category", {
                "themeName": "Easy Joining", "newCategory": "COMPLAINT",
            })
            manager.initiate("st-1", "Unknown Error", "SubTheme", "rename-subtheme", CLEAN_RENAME)
            await manager.settle()
            assert all(c.analysis.resolved for c in manager.drafts())
            verdicts = {c.operation_type: c.analysis.verdict for c in manager.drafts()}
            assert verdicts[OperationType.RENAME_SUBTHEME] is Verdict.APPROVE
            assert verdicts[OperationType.CHANGE_THEME_CATEGORY] is Verdict.WORKAROUND
        _run(scenario)

    def test_unknown_operation_is_routed_to_review(self):
        async def scenario():
            manager = _manager()
            entry = manager.initiate("st-1", "Billing", "SubTheme", "archive-subtheme", {"currentName": "Billing"})
            assert isinstance(entry, HighRiskReview)
            assert entry.operation_type is None
            assert entry.diff_items == []
            await manager.settle()
            assert entry.analysis.verdict is Verdict.WORKAROUND
        _run(scenario)

    def test_initiate_needs_a_running_loop(self):
        with pytest.raises(RuntimeError):
            _manager().initiate("st-1", "Unknown Error", "SubTheme", "rename-subtheme", CLEAN_RENAME)

    def test_unknown_ids(self):
        manager = _manager()
        with pytest.raises(UnknownEntry):
            manager.get_entry("review-missing")
        with pytest.raises(UnknownEntry):
            manager.dismiss("review-missing")


# ---------------------------------------------------------------------------
# Review transitions
# ---------------------------------------------------------------------------

class TestAccept:
    def test_accept_before_resolution_is_invalid(self):
        async def scenario():
            manager = _manager()
            entry = manager.initiate("st-1", "Errors", "SubTheme", "split-subtheme", CLEAN_SPLIT)
            with pytest.raises(InvalidTransition):
                manager.accept(entry.id)
            await manager.settle()
        _run(scenario)

    def test_accept_materializes_one_draft_per_diff_item(self):
        async def scenario():
            manager = _manager()
            entry = manager.initiate("st-1", "Errors", "SubTheme", "split-subtheme", CLEAN_SPLIT)
            await manager.settle()
            changes = manager.accept(entry.id)
            assert [c.field for c in changes] == ["delete", "add", "add"]
            assert all(c.analysis is entry.analysis for c in changes)
            assert entry.state is ReviewState.ACCEPTED
            assert manager.pending_reviews() == []
            (group,) = manager.draft_groups()
            assert group["action"] == "SPLIT"
            assert group["groupId"] == entry.id
        _run(scenario)

    def test_accept_twice_is_invalid(self):
        async def scenario():
            manager = _manager()
            entry = manager.initiate("st-1", "Errors", "SubTheme", "split-subtheme", CLEAN_SPLIT)
            await manager.settle()
            manager.accept(entry.id)
            with pytest.raises(InvalidTransition):
                manager.accept(entry.id)
        _run(scenario)

    def test_rejected_review_cannot_be_accepted(self):
        async def scenario():
            manager = _manager()
            entry = manager.initiate("st-1", "Refund Delays", "SubTheme", "merge-subtheme", UNRELATED_MERGE)
            await manager.settle()
            with pytest.raises(InvalidTransition):
                manager.accept(entry.id)
        _run(scenario)

    def test_draft_group_is_not_a_review(self):
        async def scenario():
            manager = _manager()
            entry = manager.initiate("st-1", "Unknown Error", "SubTheme", "rename-subtheme", CLEAN_RENAME)
            await manager.settle()
            with pytest.raises(InvalidTransition):
                manager.accept(entry.id)
        _run(scenario)


class TestDismissAndContact:
    def test_dismiss_makes_inert_drafts(self):
        async def scenario():
            manager = _manager()
            entry = manager.initiate("st-1", "Refund Delays", "SubTheme", "merge-subtheme", UNRELATED_MERGE)
            await manager.settle()
            (change,) = manager.dismiss(entry.id)
            assert change.resolution is Resolution.DISMISSED
            assert change.inert
            assert entry.state is ReviewState.DISMISSED
            assert manager.pending_reviews() == []
        _run(scenario)

    def test_contact_tags_group_drafts(self):
        async def scenario():
            manager = _manager()
            entry = manager.initiate("st-1", "Unknown Error", "SubTheme", "rename-subtheme", CLEAN_RENAME)
            (change,) = manager.contact(entry.id)
            assert change.resolution is Resolution.CONTACTED
            assert entry.state is ReviewState.CONTACTED
            await manager.settle()
        _run(scenario)

    def test_reject_is_dismiss(self):
        assert ChangeLifecycleManager.reject is ChangeLifecycleManager.dismiss

    def test_dismiss_before_resolution_then_late_result(self):
        async def scenario():
            manager = _manager()
            entry = manager.initiate("st-1", "Refund Delays", "SubTheme", "merge-subtheme", UNRELATED_MERGE)
            (change,) = manager.dismiss(entry.id)
            assert change.analysis.status is AnalysisStatus.ANALYZING

            await manager.settle()
            assert entry.state is ReviewState.DISMISSED
            assert entry.late_analysis.verdict is Verdict.REJECT
            assert entry.analysis.status is AnalysisStatus.ANALYZING
            assert change.analysis.verdict is Verdict.REJECT
            with pytest.raises(InvalidTransition):
                manager.accept(entry.id)
        _run(scenario)

    def test_late_result_is_serialized(self):
        async def scenario():
            manager = _manager()
            entry = manager.initiate("st-1", "Refund Delays", "SubTheme", "merge-subtheme", UNRELATED_MERGE)
            manager.dismiss(entry.id)
            assert entry.to_dict()["lateAnalysis"] is None

            await manager.settle()
            data = manager.get_entry(entry.id).to_dict()
            assert data["state"] == "dismissed"
            assert data["analysis"]["status"] == "analyzing"
            assert data["lateAnalysis"]["verdict"] == "REJECT"
        _run(scenario)


class TestAcceptWorkaround:
    def test_transfer_then_merge_yields_move_then_merge(self):
        async def scenario():
            manager = _manager()
            entry = manager.initiate("st-1", "Unknown Error", "SubTheme", "rename-subtheme", CROSS_THEME_RENAME)
            await manager.settle()
            changes = manager.accept_workaround(entry.id)

            assert [c.field for c in changes] == ["move", "merge"]
            assert changes[0].new_value == "Easy Joining"
            assert changes[1].new_value == "One Click Join"
            assert all(c.resolution is Resolution.WORKAROUND_ACCEPTED for c in changes)
            assert all(c.operation_description.startswith("Workaround for ") for c in changes)
            # The initial rename draft is replaced
            assert manager.drafts() == changes
            assert entry.state is ReviewState.WORKAROUND_ACCEPTED
        _run(scenario)

    def test_merge_parents_yields_one_step(self):
        async def scenario():
            manager = _manager()
            entry = manager.initiate("st-1", "Refund Delays", "SubTheme", "merge-subtheme", UNRELATED_MERGE)
            await manager.settle()
            (change,) = manager.accept_workaround(entry.id)
            assert (change.field, change.old_value, change.new_value) == ("merge", "Billing", "Video Quality")
            assert change.node_level is NodeLevel.THEME
        _run(scenario)

    def test_before_resolution_is_invalid(self):
        async def scenario():
            manager = _manager()
            entry = manager.initiate("st-1", "Refund Delays", "SubTheme", "merge-subtheme", UNRELATED_MERGE)
            with pytest.raises(InvalidTransition):
                manager.accept_workaround(entry.id)
            await manager.settle()
        _run(scenario)

    def test_no_workaround_offered_is_invalid(self):
        async def scenario():
            manager = _manager()
            entry = manager.initiate("st-1", "Unknown Error", "SubTheme", "rename-subtheme", CLEAN_RENAME)
            await manager.settle()
            with pytest.raises(InvalidTransition):
                manager.accept_workaround(entry.id)
        _run(scenario)

    def test_destination_override(self):
        async def scenario():
            manager = _manager()
            entry = manager.initiate("kw-1", "Join via Link", "L3", "delete-keyword", {
                "currentName": "Join via Link", "subThemeNames": ["One Click Join"],
            })
            await manager.settle()
            assert entry.analysis.workaround_context.destination_name is None
            with pytest.raises(IncompleteWorkaround):
                manager.accept_workaround(entry.id)
            assert entry.state is ReviewState.RESOLVED

            (change,) = manager.accept_workaround(entry.id, "Schedule a Meeting")
            assert change.new_value == "Schedule a Meeting"
            assert change.node_level is NodeLevel.L3
        _run(scenario)


# ---------------------------------------------------------------------------
# Failure and concurrency
# ---------------------------------------------------------------------------

class TestEvaluationFailure:
    def test_exception_becomes_error_analysis(self):
        async def scenario():
            manager = _manager(decision=ExplodingDecision())
            entry = manager.initiate("st-1", "Errors", "SubTheme", "split-subtheme", CLEAN_SPLIT)
            await manager.settle()
            assert entry.state is ReviewState.RESOLVED
            assert entry.analysis.status is AnalysisStatus.ERROR
            assert entry.analysis.error == "RuntimeError: backend exploded"
            # Inconclusive: the user decides manually
            assert len(manager.accept(entry.id)) == 3
        _run(scenario)


class TestConcurrency:
    def test_completions_in_any_order(self):
        async def scenario():
            decision = GatedDecision([OperationType.MERGE_SUBTHEME, OperationType.RENAME_SUBTHEME])
            manager = _manager(decision=decision)
            review = manager.initiate("st-1", "Refund Delays", "SubTheme", "merge-subtheme", UNRELATED_MERGE)
            group = manager.initiate("st-2", "Unknown Error", "SubTheme", "rename-subtheme", CLEAN_RENAME)

            decision.gates[OperationType.RENAME_SUBTHEME].set()
            while group.state is ReviewState.ANALYZING:
                await asyncio.sleep(0)
            assert review.state is ReviewState.ANALYZING

            decision.gates[OperationType.MERGE_SUBTHEME].set()
            await manager.settle()
            assert review.analysis.verdict is Verdict.REJECT
            assert group.analysis.verdict is Verdict.APPROVE
        _run(scenario)


# ---------------------------------------------------------------------------
# Drafts, bulk actions and processing
# ---------------------------------------------------------------------------

class TestDrafts:
    def test_undo_removes_only_that_draft(self):
        async def scenario():
            manager = _manager()
            entry = manager.initiate("st-1", "Errors", "SubTheme", "split-subtheme", CLEAN_SPLIT)
            await manager.settle()
            first, *rest = manager.accept(entry.id)
            assert manager.undo(first.id)
            assert manager.drafts() == rest
            assert not manager.undo(first.id)
        _run(scenario)

    def test_set_resolution_makes_draft_inert(self):
        async def scenario():
            manager = _manager()
            manager.initiate("st-1", "Unknown Error", "SubTheme", "rename-subtheme", CLEAN_RENAME)
            (change,) = manager.drafts()
            manager.set_resolution(change.id, "dismissed")
            assert change.inert
            with pytest.raises(ValueError):
                manager.set_resolution(change.id, "maybe")
            await manager.settle()
        _run(scenario)

    def test_discard_all(self):
        async def scenario():
            manager = _manager()
            group = manager.initiate("st-1", "Unknown Error", "SubTheme", "rename-subtheme", CLEAN_RENAME)
            review = manager.initiate("st-2", "Refund Delays", "SubTheme", "merge-subtheme", UNRELATED_MERGE)
            await manager.settle()
            assert manager.discard_all() == 1
            assert manager.drafts() == []
            assert group.state is ReviewState.DISMISSED
            assert manager.pending_reviews() == [review]
        _run(scenario)


class TestApplyAll:
    def test_pending_review_blocks_apply(self):
        async def scenario():
            manager = _manager()
            manager.initiate("st-1", "Unknown Error", "SubTheme", "rename-subtheme", CLEAN_RENAME)
            manager.initiate("st-2", "Refund Delays", "SubTheme", "merge-subtheme", UNRELATED_MERGE)
            await manager.settle()
            with pytest.raises(InvalidTransition):
                manager.apply_all()
        _run(scenario)

    def test_nothing_to_apply(self):
        with pytest.raises(InvalidTransition):
            _manager().apply_all()

    def test_apply_skips_inert_drafts_and_gates_new_edits(self):
        async def scenario():
            audit = FakeAudit()
            manager = _manager(audit=audit)
            kept = manager.initiate("st-1", "Unknown Error", "SubTheme", "rename-subtheme", CLEAN_RENAME)
            review = manager.initiate("st-2", "Refund Delays", "SubTheme", "merge-subtheme", UNRELATED_MERGE)
            await manager.settle()
            manager.dismiss(review.id)

            applied = manager.apply_all()
            assert [c.group_id for c in applied] == [kept.id]
            assert kept.state is ReviewState.ACCEPTED
            assert manager.drafts() == []
            assert manager.processing.is_processing
            assert manager.processing.estimate == "2-3 hours"
            assert manager.processing.applied_count == 1
            assert "DRAFTS_APPLIED" in audit.actions

            with pytest.raises(ProcessingInProgress):
                manager.initiate("st-3", "Unknown Error", "SubTheme", "rename-subtheme", CLEAN_RENAME)
            with pytest.raises(ProcessingInProgress):
                manager.apply_all()

            finished = manager.complete_processing()
            assert finished.applied_count == 1
            assert not manager.processing.is_processing
            assert not manager.complete_processing().is_processing

            manager.initiate("st-3", "Unknown Error", "SubTheme", "rename-subtheme", CLEAN_RENAME)
            await manager.settle()
        _run(scenario)

    def test_audit_trail_of_a_session(self):
        async def scenario():
            audit = FakeAudit()
            manager = _manager(audit=audit)
            entry = manager.initiate("st-1", "Errors", "SubTheme", "split-subtheme", CLEAN_SPLIT)
            await manager.settle()
            manager.accept(entry.id)
            manager.apply_all()
            assert audit.actions == ["CHANGE_INITIATED", "CHANGE_ACCEPTED", "DRAFTS_APPLIED"]
        _run(scenario)
