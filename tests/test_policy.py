"""Tests for the deterministic policy evaluator.

Covers:
- every ordered branch of every operation's decision table
- fail-closed handling of unknown operation types
- the single-parent rule for sub-theme operations
- missing-context advisories and wire serialisation
"""

from __future__ import annotations

import pytest

from taxonomy_governance.operations import (
    Confidence,
    OperationContext,
    OperationRisk,
    OperationType,
    Verdict,
    WorkaroundType,
)
from taxonomy_governance.policy_engine import (
    HIGH_VOLUME_THRESHOLD,
    EvaluationResult,
    PolicyEvaluator,
)


def _evaluate(op: str, **context) -> EvaluationResult:
    return PolicyEvaluator().evaluate(op, context)


# ---------------------------------------------------------------------------
# rename-subtheme
# ---------------------------------------------------------------------------

class TestRenameSubtheme:
    def test_clean_rename_is_approved_with_high_confidence(self):
        result = _evaluate(
            "rename-subtheme",
            currentName="Unknown Error", newName="Scheduling Error Messages",
        )
        assert result.verdict is Verdict.APPROVE
        assert result.confidence is Confidence.HIGH
        assert result.passed
        assert result.matched_rules == ["rename-subtheme/clean"]

    def test_cross_theme_duplicate_offers_transfer_then_merge(self):
        result = _evaluate(
            "rename-subtheme",
            currentName="Unknown Error",
            newName="calendar connection errors",
            parentThemeName="Scheduling Blocked by Error Messages",
            crossThemeSubThemes=[
                {"name": "Calendar Connection Errors", "parentTheme": "Calendar Integrations"},
            ],
        )
        assert result.verdict is Verdict.WORKAROUND
        assert result.confidence is Confidence.MED
        assert result.workaround_type is WorkaroundType.TRANSFER_THEN_MERGE
        ctx = result.workaround_context
        assert ctx.source_name == "Unknown Error"
        assert ctx.destination_name == "Calendar Connection Errors"
        assert ctx.source_parent_theme == "Scheduling Blocked by Error Messages"
        assert ctx.destination_parent_theme == "Calendar Integrations"

    def test_same_parent_entries_in_cross_theme_list_are_ignored(self):
        result = _evaluate(
            "rename-subtheme",
            currentName="Unknown Error",
            newName="Calendar Connection Errors",
            parentThemeName="Scheduling",
            crossThemeSubThemes=[{"name": "Calendar Connection Errors", "parentTheme": "Scheduling"}],
        )
        assert result.workaround_type is not WorkaroundType.TRANSFER_THEN_MERGE

    def test_sibling_overlap_offers_merge_siblings(self):
        result = _evaluate(
            "rename-subtheme",
            currentName="Unknown Error",
            newName="Calendar Sync Errors",
            siblingSubThemes=["Unknown Error", "Calendar Connection Errors"],
        )
        assert result.verdict is Verdict.WORKAROUND
        assert result.workaround_type is WorkaroundType.MERGE_SIBLINGS
        assert result.workaround_context.destination_name == "Calendar Connection Errors"

    def test_duplicate_outranks_overlap(self):
        result = _evaluate(
            "rename-subtheme",
            currentName="Unknown Error",
            newName="Calendar Connection Errors",
            parentThemeName="Scheduling",
            siblingSubThemes=["Calendar Sync Errors"],
            crossThemeSubThemes=[{"name": "Calendar Connection Errors", "parentTheme": "Integrations"}],
        )
        assert result.workaround_type is WorkaroundType.TRANSFER_THEN_MERGE

    def test_generic_new_name_is_conditional(self):
        result = _evaluate("rename-subtheme", currentName="Unknown Error", newName="Other")
        assert result.verdict is Verdict.APPROVE_WITH_CONDITIONS
        assert result.confidence is Confidence.MED


# ---------------------------------------------------------------------------
# rename-theme
# ---------------------------------------------------------------------------

class TestRenameTheme:
    def test_overlap_with_sibling_theme(self):
        result = _evaluate(
            "rename-theme",
            currentName="Struggle to Locate Schedule Option",
            newName="Scheduling Blocked by Errors",
            siblingThemes=["Scheduling Blocked by Error Messages"],
        )
        assert result.verdict is Verdict.WORKAROUND
        assert result.workaround_type is WorkaroundType.MERGE_SIBLINGS

    def test_generic_theme_name(self):
        result = _evaluate("rename-theme", currentName="Billing", newName="General")
        assert result.verdict is Verdict.APPROVE_WITH_CONDITIONS

    def test_clean_theme_rename(self):
        result = _evaluate("rename-theme", currentName="Billing", newName="Invoices and Refunds")
        assert result.verdict is Verdict.APPROVE
        assert result.confidence is Confidence.HIGH


# ---------------------------------------------------------------------------
# delete-subtheme
# ---------------------------------------------------------------------------

class TestDeleteSubtheme:
    @pytest.mark.parametrize("volume", [0, 10, 5000])
    def test_catch_all_is_rejected_regardless_of_volume(self, volume):
        result = _evaluate(
            "delete-subtheme",
            currentName="Miscellaneous", volume=volume,
            siblingSubThemes=["Calendar Connection Errors"],
        )
        assert result.verdict is Verdict.REJECT
        assert result.confidence is Confidence.HIGH
        assert result.blocked
        assert result.workaround

    def test_only_child_is_rejected(self):
        result = _evaluate("delete-subtheme", currentName="One Click Join", siblingSubThemes=["One Click Join"])
        assert result.verdict is Verdict.REJECT
        assert result.confidence is Confidence.MED
        assert result.matched_rules == ["delete-subtheme/only-child"]

    def test_high_volume_is_conditional(self):
        result = _evaluate(
            "delete-subtheme",
            currentName="Calendar Connection Errors",
            volume=HIGH_VOLUME_THRESHOLD + 1,
            siblingSubThemes=["Permission Denied Messages"],
        )
        assert result.verdict is Verdict.APPROVE_WITH_CONDITIONS

    def test_threshold_itself_is_not_high_volume(self):
        result = _evaluate(
            "delete-subtheme",
            currentName="Calendar Connection Errors",
            volume=HIGH_VOLUME_THRESHOLD,
            siblingSubThemes=["Permission Denied Messages"],
        )
        assert result.verdict is Verdict.APPROVE


# ---------------------------------------------------------------------------
# delete-keyword
# ---------------------------------------------------------------------------

class TestDeleteKeyword:
    def test_keyword_without_subthemes_is_approved(self):
        result = _evaluate("delete-keyword", currentName="Meeting Registration")
        assert result.verdict is Verdict.APPROVE

    def test_shared_keyword_is_rejected(self):
        result = _evaluate(
            "delete-keyword",
            currentName="General Settings",
            subThemeNames=["Audio Settings"],
            l1Name="Zoom Meetings", l2Name="Settings",
        )
        assert result.verdict is Verdict.REJECT

    def test_general_keyword_without_path_falls_through_to_merge(self):
        result = _evaluate(
            "delete-keyword",
            currentName="General Settings",
            subThemeNames=["Audio Settings"],
        )
        assert result.verdict is Verdict.WORKAROUND

    def test_merge_into_first_sibling_keyword(self):
        result = _evaluate(
            "delete-keyword",
            currentName="Join via Link",
            subThemeNames=["One Click Join", "Broken Links"],
            siblingKeywords=["Join via Link", "Schedule a Meeting", "Meeting Registration"],
        )
        assert result.verdict is Verdict.WORKAROUND
        assert result.workaround_type is WorkaroundType.MERGE_KEYWORD
        assert result.workaround_context.source_name == "Join via Link"
        assert result.workaround_context.destination_name == "Schedule a Meeting"


# ---------------------------------------------------------------------------
# merge-subtheme
# ---------------------------------------------------------------------------

class TestMergeSubtheme:
    def test_unrelated_parents_rejected_with_merge_parents(self):
        result = _evaluate(
            "merge-subtheme",
            sourceName="Refund Delays", destinationName="Frozen Video",
            sourceParentTheme="Billing", destinationParentTheme="Video Quality",
        )
        assert result.verdict is Verdict.REJECT
        assert result.confidence is Confidence.HIGH
        assert result.workaround_type is WorkaroundType.MERGE_PARENTS
        assert result.workaround_context.source_name == "Billing"
        assert result.workaround_context.destination_name == "Video Quality"

    def test_related_parents_offer_move(self):
        result = _evaluate(
            "merge-subtheme",
            sourceName="Login Timeout", destinationName="Session Expired",
            sourceParentTheme="Login Errors", destinationParentTheme="Sign-in Issues",
        )
        assert result.verdict is Verdict.WORKAROUND
        assert result.workaround_type is WorkaroundType.MOVE_TO_PARENT
        assert result.workaround_context.destination_parent_theme == "Sign-in Issues"

    def test_same_parent_incompatible_names_rejected(self):
        result = _evaluate(
            "merge-subtheme",
            sourceName="Calendar Connection Errors",
            destinationName="Permission Denied Messages",
            sourceParentTheme="Scheduling Blocked by Error Messages",
            destinationParentTheme="Scheduling Blocked by Error Messages",
        )
        assert result.verdict is Verdict.REJECT
        assert result.workaround_type is None

    def test_moderate_similarity_is_partial_with_three_items(self):
        result = _evaluate(
            "merge-subtheme",
            sourceName="Calendar Sync Errors", destinationName="Calendar Invite Delays",
        )
        assert result.verdict is Verdict.PARTIAL
        assert result.confidence is Confidence.MED
        assert len(result.partial_items) == 3
        assert [item.included for item in result.partial_items] == [True, True, False]

    def test_compatible_same_parent_merge_is_approved(self):
        result = _evaluate(
            "merge-subtheme",
            sourceName="Calendar Sync Errors", destinationName="Calendar Sync Failures Reported",
            sourceParentTheme="Scheduling", destinationParentTheme="scheduling",
        )
        assert result.verdict is Verdict.APPROVE


# ---------------------------------------------------------------------------
# merge-theme / split / create / category / promote
# ---------------------------------------------------------------------------

class TestMergeTheme:
    def test_category_mismatch_offers_change_category(self):
        result = _evaluate(
            "merge-theme",
            sourceName="Easy Joining", destinationName="Struggle to Locate Schedule Option",
            sourceCategory="praise", destinationCategory="complaint",
        )
        assert result.verdict is Verdict.WORKAROUND
        assert result.workaround_type is WorkaroundType.CHANGE_CATEGORY
        assert result.workaround_context.new_category.value == "COMPLAINT"

    def test_same_category_is_conditional(self):
        result = _evaluate(
            "merge-theme", sourceName="A Theme", destinationName="B Theme",
            sourceCategory="COMPLAINT", destinationCategory="COMPLAINT",
        )
        assert result.verdict is Verdict.APPROVE_WITH_CONDITIONS


class TestSplitSubtheme:
    def test_collision_is_partial_with_one_item_per_name(self):
        proposed = ["Calendar Connection Errors", "Timezone Errors", "Invite Errors"]
        result = _evaluate(
            "split-subtheme",
            currentName="Unknown Error During Scheduling",
            proposedSplits=proposed,
            siblingSubThemes=["Calendar Connection Errors", "Permission Denied Messages"],
        )
        assert result.verdict is Verdict.PARTIAL
        assert len(result.partial_items) == len(proposed)
        assert [item.included for item in result.partial_items].count(False) == 1
        assert result.partial_items[0].included is False

    def test_over_fragmentation(self):
        result = _evaluate(
            "split-subtheme", currentName="Errors",
            proposedSplits=[f"Part {i}" for i in range(6)],
        )
        assert result.verdict is Verdict.APPROVE_WITH_CONDITIONS
        assert result.matched_rules == ["split-subtheme/over-fragmentation"]

    def test_plain_split_warns_about_coverage(self):
        result = _evaluate("split-subtheme", currentName="Errors", proposedSplits=["A Errors", "B Errors"])
        assert result.verdict is Verdict.APPROVE_WITH_CONDITIONS
        assert result.matched_rules == ["split-subtheme/coverage-gap"]


class TestCreate:
    def test_duplicate_subtheme_rejected(self):
        result = _evaluate(
            "create-subtheme", proposedName="calendar connection errors",
            siblingSubThemes=["Calendar Connection Errors"],
        )
        assert result.verdict is Verdict.REJECT

    def test_duplicate_theme_rejected(self):
        result = _evaluate("create-theme", proposedName="Easy Joining", siblingThemes=["Easy Joining"])
        assert result.verdict is Verdict.REJECT

    def test_generic_subtheme_is_conditional(self):
        result = _evaluate("create-subtheme", proposedName="Other")
        assert result.verdict is Verdict.APPROVE_WITH_CONDITIONS

    def test_generic_name_only_matters_for_subthemes(self):
        result = _evaluate("create-theme", proposedName="Other")
        assert result.verdict is Verdict.APPROVE

    def test_new_name_stands_in_for_proposed_name(self):
        result = _evaluate("create-subtheme", newName="Timezone Errors", siblingSubThemes=["Invite Errors"])
        assert result.verdict is Verdict.APPROVE
        assert not any(risk.startswith("Context is missing") for risk in result.risks)

    def test_name_missing_under_both_keys_is_reported(self):
        result = _evaluate("create-theme", siblingThemes=["Easy Joining"])
        assert result.risks[-1] == "Context is missing: proposedName"


class TestChangeThemeCategory:
    def test_no_peer_offers_create_theme(self):
        result = _evaluate(
            "change-theme-category",
            themeName="Easy Joining", newCategory="IMPROVEMENT",
            siblingThemeCategories=[{"name": "Easy Joining", "category": "PRAISE"}],
        )
        assert result.verdict is Verdict.WORKAROUND
        assert result.workaround_type is WorkaroundType.CREATE_THEME
        assert result.workaround_context.proposed_name == "Easy Joining"

    def test_peer_present_is_approved(self):
        result = _evaluate(
            "change-theme-category",
            themeName="Easy Joining", newCategory="COMPLAINT",
            siblingThemeCategories=[{"name": "Scheduling Blocked", "category": "complaint"}],
        )
        assert result.verdict is Verdict.APPROVE

    def test_peer_present_high_volume_is_conditional(self):
        result = _evaluate(
            "change-theme-category",
            themeName="Easy Joining", newCategory="COMPLAINT", themeVolume=900,
            siblingThemeCategories=[{"name": "Scheduling Blocked", "category": "COMPLAINT"}],
        )
        assert result.verdict is Verdict.APPROVE_WITH_CONDITIONS


def test_promote_is_always_create_theme():
    result = _evaluate("promote-subtheme", currentName="One Click Join")
    assert result.verdict is Verdict.WORKAROUND
    assert result.workaround_type is WorkaroundType.CREATE_THEME
    assert result.workaround_context.proposed_name == "One Click Join"


# ---------------------------------------------------------------------------
# Cross-cutting behaviour
# ---------------------------------------------------------------------------

class TestFailClosed:
    @pytest.mark.parametrize("op", ["archive-subtheme", "", None, 42])
    def test_unknown_operation_is_low_confidence_workaround(self, op):
        result = PolicyEvaluator().evaluate(op, {"currentName": "Billing"})
        assert result.verdict is Verdict.WORKAROUND
        assert result.confidence is Confidence.LOW
        assert result.operation_type is None
        assert result.operation_risk is OperationRisk.MEDIUM
        assert result.matched_rules == ["unknown-operation"]

    @pytest.mark.parametrize("op", list(OperationType))
    def test_empty_context_never_raises(self, op):
        result = PolicyEvaluator().evaluate(op, None)
        assert isinstance(result.verdict, Verdict)
        assert result.operation_type is op


class TestMultiParent:
    def test_subtheme_with_two_parents_is_rejected(self):
        result = _evaluate(
            "rename-subtheme",
            currentName="Unknown Error", newName="Scheduling Error Messages",
            parentThemeNames=["Scheduling Blocked", "Calendar Integrations"],
        )
        assert result.verdict is Verdict.REJECT
        assert result.confidence is Confidence.HIGH
        assert result.matched_rules == ["subtheme/multi-parent"]

    def test_repeated_parent_name_counts_once(self):
        result = _evaluate(
            "rename-subtheme",
            currentName="Unknown Error", newName="Scheduling Error Messages",
            parentThemeNames=["Scheduling Blocked", "scheduling blocked"],
        )
        assert result.verdict is Verdict.APPROVE

    def test_theme_operations_ignore_parent_list(self):
        result = _evaluate(
            "rename-theme", currentName="Billing", newName="Invoices",
            parentThemeNames=["A", "B"],
        )
        assert result.verdict is Verdict.APPROVE


class TestAdvisoriesAndWire:
    def test_missing_context_is_reported_as_risk(self):
        result = _evaluate("rename-subtheme", currentName="Unknown Error")
        assert result.risks[-1] == "Context is missing: newName"

    def test_accepts_operation_context_instance(self):
        ctx = OperationContext(current_name="Miscellaneous")
        assert PolicyEvaluator().evaluate(OperationType.DELETE_SUBTHEME, ctx).verdict is Verdict.REJECT

    def test_wire_shape(self):
        result = _evaluate(
            "split-subtheme", currentName="Errors",
            proposedSplits=["Calendar Errors", "Login Errors"],
            siblingSubThemes=["Calendar Errors"],
        )
        wire = result.to_wire()
        assert wire["operationRisk"] == "High"
        assert wire["verdict"] == "PARTIAL"
        assert wire["confidence"] == "Med"
        assert wire["partialItems"][0] == {
            "name": "Calendar Errors",
            "included": False,
            "reason": 'Duplicates existing sibling "Calendar Errors"',
        }
        assert "workaroundType" not in wire

    def test_workaround_context_is_partial_on_the_wire(self):
        wire = _evaluate(
            "merge-subtheme",
            sourceName="Refund Delays", destinationName="Frozen Video",
            sourceParentTheme="Billing", destinationParentTheme="Video Quality",
        ).to_wire()
        assert wire["verdict"] == "REJECT"
        assert wire["workaroundType"] == "merge-parents"
        assert wire["workaroundContext"] == {"sourceName": "Billing", "destinationName": "Video Quality"}

    def test_summary_mentions_verdict_and_rule(self):
        text = _evaluate("delete-subtheme", currentName="Miscellaneous").summary()
        assert "Verdict:    REJECT" in text
        assert "delete-subtheme/catch-all" in text
