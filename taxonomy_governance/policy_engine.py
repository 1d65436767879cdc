"""
Deterministic Policy Evaluator
Decides whether a proposed taxonomy edit may proceed.

Each operation kind has an ordered table of checks; the first check that
fires decides the verdict, so the order of the checks is itself the
tie-break policy. Evaluation is total: missing context falls back to
defaults and is reported as an advisory risk, and an unrecognised
operation fails closed with a low-confidence WORKAROUND.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from pydantic.alias_generators import to_camel

from taxonomy_governance.lexical import (
    are_parents_related,
    find_exact_duplicate,
    find_incompatible_pair,
    find_word_overlap,
    is_catch_all_name,
    is_generic_name,
    is_moderate_similarity,
    shared_tokens,
)
from taxonomy_governance.operations import (
    Confidence,
    OperationContext,
    OperationRisk,
    OperationType,
    PartialItem,
    SUBTHEME_OPERATIONS,
    Verdict,
    WorkaroundType,
    get_operation_risk,
)

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------
HIGH_VOLUME_THRESHOLD = 200
MAX_SPLIT_PARTS = 5


# ---------------------------------------------------------------------------
# Domain types
# ---------------------------------------------------------------------------

@dataclass
class EvaluationResult:
    verdict: Verdict
    confidence: Confidence
    operation_type: Optional[OperationType]
    operation_risk: OperationRisk
    risks: list[str] = field(default_factory=list)
    workaround: Optional[str] = None
    workaround_type: Optional[WorkaroundType] = None
    workaround_context: Optional[OperationContext] = None
    partial_items: list[PartialItem] = field(default_factory=list)
    rationale: list[str] = field(default_factory=list)
    matched_rules: list[str] = field(default_factory=list)
    source: str = "local"
    prompt: Optional[str] = None
    response: Optional[str] = None

    @property
    def passed(self) -> bool:
        return self.verdict == Verdict.APPROVE

    @property
    def blocked(self) -> bool:
        return self.verdict == Verdict.REJECT

    def summary(self) -> str:
        op = self.operation_type.value if self.operation_type else "unknown"
        lines = [
            f"Verdict:    {self.verdict.value}",
            f"Confidence: {self.confidence.value}",
            f"Operation:  {op} ({self.operation_risk.value} risk)",
        ]
        if self.risks:
            lines.append("Risks:")
            for r in self.risks:
                lines.append(f"  - {r}")
        if self.workaround:
            kind = f" [{self.workaround_type.value}]" if self.workaround_type else ""
            lines.append(f"Workaround{kind}: {self.workaround}")
        if self.partial_items:
            lines.append("Partial:")
            for item in self.partial_items:
                mark = "x" if item.included else " "
                lines.append(f"  [{mark}] {item.name}: {item.reason}")
        if self.rationale:
            lines.append("Rationale:")
            for r in self.rationale:
                lines.append(f"  - {r}")
        if self.matched_rules:
            lines.append(f"Matched Rules: {', '.join(self.matched_rules)}")
        return "\n".join(lines)

    def to_wire(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "operationRisk": self.operation_risk.value,
            "verdict": self.verdict.value,
            "confidence": self.confidence.value,
            "risks": list(self.risks),
        }
        if self.workaround is not None:
            data["workaround"] = self.workaround
        if self.workaround_type is not None:
            data["workaroundType"] = self.workaround_type.value
        if self.workaround_context is not None:
            data["workaroundContext"] = self.workaround_context.to_wire(partial=True)
        if self.partial_items:
            data["partialItems"] = [
                item.model_dump(by_alias=True) for item in self.partial_items
            ]
        return data


@dataclass
class _Outcome:
    """What a decision procedure returns before the evaluator stamps it."""
    verdict: Verdict
    confidence: Confidence
    rule: str
    risks: list[str]
    rationale: str
    workaround: Optional[str] = None
    workaround_type: Optional[WorkaroundType] = None
    workaround_context: Optional[OperationContext] = None
    partial_items: list[PartialItem] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Context helpers
# ---------------------------------------------------------------------------

def _excluding(names: list[str], name: Optional[str]) -> list[str]:
    """Siblings lists sometimes include the subject itself; drop it."""
    if not name:
        return list(names)
    own = name.strip().lower()
    return [n for n in names if n.strip().lower() != own]


def _parent_of(ctx: OperationContext) -> str:
    return ctx.parent_theme_name or ctx.theme_name or ""


def _distinct_parents(ctx: OperationContext) -> list[str]:
    seen: list[str] = []
    for name in ctx.parent_theme_names:
        if name and name.strip().lower() not in {s.lower() for s in seen}:
            seen.append(name.strip())
    return seen


def _volume(ctx: OperationContext) -> int:
    return ctx.volume or 0


# ---------------------------------------------------------------------------
# Decision procedures
# ---------------------------------------------------------------------------

def _rename_subtheme(ctx: OperationContext) -> _Outcome:
    current = ctx.current_name or ""
    new_name = ctx.new_name or ""
    parent = _parent_of(ctx)

    elsewhere = [
        ref for ref in ctx.cross_theme_sub_themes
        if ref.parent_theme.strip().lower() != parent.strip().lower()
    ]
    duplicate = find_exact_duplicate(new_name, [ref.name for ref in elsewhere])
    if duplicate is not None:
        holder = next(ref for ref in elsewhere if ref.name == duplicate)
        return _Outcome(
            Verdict.WORKAROUND, Confidence.MED, "rename-subtheme/cross-theme-duplicate",
            risks=[
                f'"{duplicate}" already exists under "{holder.parent_theme}"',
                "Two sub-themes with the same name split reporting for one issue",
            ],
            rationale=f'New name duplicates a sub-theme under "{holder.parent_theme}"',
            workaround=(
                f'Move "{current}" under "{holder.parent_theme}", then merge it '
                f'into the existing "{duplicate}".'
            ),
            workaround_type=WorkaroundType.TRANSFER_THEN_MERGE,
            workaround_context=OperationContext(
                source_name=current,
                destination_name=duplicate,
                source_parent_theme=parent or None,
                destination_parent_theme=holder.parent_theme,
            ),
        )

    siblings = _excluding(ctx.sibling_sub_themes, current)
    overlap = find_exact_duplicate(new_name, siblings) or find_word_overlap(new_name, siblings)
    if overlap is not None:
        return _Outcome(
            Verdict.WORKAROUND, Confidence.MED, "rename-subtheme/sibling-overlap",
            risks=[
                f'New name overlaps with sibling "{overlap}"',
                "Records would be split across near-identical sub-themes",
            ],
            rationale=f'"{new_name}" shares its key terms with sibling "{overlap}"',
            workaround=f'Merge "{current}" into the existing sibling "{overlap}" instead of renaming.',
            workaround_type=WorkaroundType.MERGE_SIBLINGS,
            workaround_context=OperationContext(
                source_name=current,
                destination_name=overlap,
                parent_theme_name=parent or None,
            ),
        )

    if is_generic_name(new_name):
        return _Outcome(
            Verdict.APPROVE_WITH_CONDITIONS, Confidence.MED, "rename-subtheme/generic-name",
            risks=[f'"{new_name}" is a catch-all name and will attract unrelated records'],
            rationale="Generic names reduce reporting precision",
        )

    return _Outcome(
        Verdict.APPROVE, Confidence.HIGH, "rename-subtheme/clean",
        risks=["Minor: Records will remain mapped to the same entity with new name"],
        rationale="No duplicate, overlap or generic-name signal",
    )


def _rename_theme(ctx: OperationContext) -> _Outcome:
    current = ctx.current_name or ""
    new_name = ctx.new_name or ""

    siblings = _excluding(ctx.sibling_themes, current)
    overlap = find_exact_duplicate(new_name, siblings) or find_word_overlap(new_name, siblings)
    if overlap is not None:
        return _Outcome(
            Verdict.WORKAROUND, Confidence.MED, "rename-theme/sibling-overlap",
            risks=[
                f'New name overlaps with sibling theme "{overlap}"',
                "Sub-themes of both themes would compete for the same records",
            ],
            rationale=f'"{new_name}" shares its key terms with sibling theme "{overlap}"',
            workaround=f'Merge "{current}" into the existing theme "{overlap}" instead of renaming.',
            workaround_type=WorkaroundType.MERGE_SIBLINGS,
            workaround_context=OperationContext(
                source_name=current,
                destination_name=overlap,
                l3_name=ctx.l3_name,
            ),
        )

    if is_generic_name(new_name):
        return _Outcome(
            Verdict.APPROVE_WITH_CONDITIONS, Confidence.MED, "rename-theme/generic-name",
            risks=[f'"{new_name}" is a catch-all name and hides what the theme tracks'],
            rationale="Generic names reduce reporting precision",
        )

    return _Outcome(
        Verdict.APPROVE, Confidence.HIGH, "rename-theme/clean",
        risks=["Minor: All sub-themes will retain their mappings"],
        rationale="No sibling overlap or generic-name signal",
    )


def _delete_subtheme(ctx: OperationContext) -> _Outcome:
    current = ctx.current_name or ""

    if is_catch_all_name(current):
        return _Outcome(
            Verdict.REJECT, Confidence.HIGH, "delete-subtheme/catch-all",
            risks=[
                "This is a catch-all capturing diverse, unclassified feedback",
                "Deleting loses visibility into unclassified issues",
                "Records may become orphaned if no alternative predictions exist",
            ],
            rationale=f'"{current}" is a catch-all bucket',
            workaround="Split the catch-all sub-theme into more specific sub-themes instead of deleting it.",
        )

    if not _excluding(ctx.sibling_sub_themes, current):
        return _Outcome(
            Verdict.REJECT, Confidence.MED, "delete-subtheme/only-child",
            risks=[
                f'"{current}" is the only sub-theme of its parent theme',
                "The parent theme would be left without any sub-theme",
            ],
            rationale="Deleting the only child empties the parent theme",
            workaround="Create a replacement sub-theme first, or delete the parent theme instead.",
        )

    volume = _volume(ctx)
    if volume > HIGH_VOLUME_THRESHOLD:
        return _Outcome(
            Verdict.APPROVE_WITH_CONDITIONS, Confidence.MED, "delete-subtheme/high-volume",
            risks=[
                f"{volume} records are mapped to this sub-theme",
                "Records may become orphaned if no alternative predictions exist",
                "Irreversible operation",
            ],
            rationale=f"Volume exceeds {HIGH_VOLUME_THRESHOLD} records",
        )

    return _Outcome(
        Verdict.APPROVE, Confidence.HIGH, "delete-subtheme/low-volume",
        risks=["Irreversible operation"],
        rationale="Low-volume sub-theme with remaining siblings",
    )


def _delete_keyword(ctx: OperationContext) -> _Outcome:
    keyword = ctx.current_name or ctx.l3_name or ""

    if not ctx.sub_theme_names:
        return _Outcome(
            Verdict.APPROVE, Confidence.HIGH, "delete-keyword/empty",
            risks=["No sub-themes are attached to this keyword"],
            rationale="Nothing would be orphaned",
        )

    lowered = keyword.lower()
    if ("general" in lowered or "common" in lowered) and ctx.l1_name and ctx.l2_name:
        return _Outcome(
            Verdict.REJECT, Confidence.MED, "delete-keyword/shared-keyword",
            risks=[
                f'"{keyword}" looks like a keyword shared across several paths',
                "Themes reachable through other paths would lose this one",
            ],
            rationale="Shared keywords anchor themes with multi-path membership",
            workaround="Remove the individual themes that are obsolete instead of the shared keyword.",
        )

    siblings = _excluding(ctx.sibling_keywords, keyword)
    destination = siblings[0] if siblings else None
    count = len(ctx.sub_theme_names)
    return _Outcome(
        Verdict.WORKAROUND, Confidence.MED, "delete-keyword/merge-instead",
        risks=[
            "All Themes and sub-themes under this keyword will be deleted",
            f"{count} sub-themes would lose their classification path",
            "Irreversible structural change",
        ],
        rationale="Merging preserves coverage that a delete would drop",
        workaround=(
            f'Merge "{keyword}" into sibling keyword "{destination}" to preserve taxonomy coverage.'
            if destination else
            "Merge this keyword with a sibling keyword to preserve taxonomy coverage."
        ),
        workaround_type=WorkaroundType.MERGE_KEYWORD,
        workaround_context=OperationContext(
            source_name=keyword,
            destination_name=destination,
            sibling_keywords=siblings,
            l1_name=ctx.l1_name,
            l2_name=ctx.l2_name,
        ),
    )


def _merge_subtheme(ctx: OperationContext) -> _Outcome:
    source = ctx.source_name or ""
    destination = ctx.destination_name or ""
    source_parent = (ctx.source_parent_theme or "").strip()
    destination_parent = (ctx.destination_parent_theme or "").strip()

    if source_parent and destination_parent and source_parent.lower() != destination_parent.lower():
        if are_parents_related(source_parent, destination_parent):
            return _Outcome(
                Verdict.WORKAROUND, Confidence.MED, "merge-subtheme/cross-parent-related",
                risks=[
                    "Sub-themes live under different parent themes",
                    f'"{source}" would inherit the category of "{destination_parent}"',
                ],
                rationale="Parents cover the same area, so a move keeps the hierarchy intact",
                workaround=f'Move "{source}" under "{destination_parent}", then merge it into "{destination}".',
                workaround_type=WorkaroundType.MOVE_TO_PARENT,
                workaround_context=OperationContext(
                    source_name=source,
                    destination_name=destination,
                    source_parent_theme=source_parent,
                    destination_parent_theme=destination_parent,
                ),
            )
        return _Outcome(
            Verdict.REJECT, Confidence.HIGH, "merge-subtheme/cross-parent-unrelated",
            risks=[
                "Sub-themes live under unrelated parent themes",
                "A merged sub-theme cannot belong to two parents",
            ],
            rationale=f'"{source_parent}" and "{destination_parent}" are unrelated',
            workaround=(
                f'Merge parent themes "{source_parent}" and "{destination_parent}" first '
                "if they really track the same thing."
            ),
            workaround_type=WorkaroundType.MERGE_PARENTS,
            workaround_context=OperationContext(
                source_name=source_parent,
                destination_name=destination_parent,
            ),
        )

    pair = find_incompatible_pair(source, destination)
    if pair is not None:
        return _Outcome(
            Verdict.REJECT, Confidence.MED, "merge-subtheme/low-similarity",
            risks=[
                "Sub-themes capture different types of feedback",
                "Merging would lose granularity for distinct issue tracking",
                "Users searching for specific issues would get mixed results",
            ],
            rationale=f'"{pair[0]}" and "{pair[1]}" describe different root causes',
            workaround="Keep both sub-themes; they track different root causes.",
        )

    if is_moderate_similarity(source, destination):
        shared = sorted(shared_tokens(source, destination))[0]
        return _Outcome(
            Verdict.PARTIAL, Confidence.MED, "merge-subtheme/moderate-similarity",
            risks=[
                f'Names only share the term "{shared}"',
                "Part of the source feedback does not fit the destination",
            ],
            rationale="Some but not full overlap between the two sub-themes",
            partial_items=[
                PartialItem(
                    name=f'{source} feedback mentioning "{shared}"',
                    included=True,
                    reason=f'Matches the scope of "{destination}"',
                ),
                PartialItem(
                    name=destination,
                    included=True,
                    reason="Destination keeps all of its records",
                ),
                PartialItem(
                    name=f'{source} feedback not mentioning "{shared}"',
                    included=False,
                    reason="Specific to the source; keep it as its own sub-theme",
                ),
            ],
        )

    return _Outcome(
        Verdict.APPROVE, Confidence.HIGH, "merge-subtheme/same-parent",
        risks=[
            "Irreversible operation: cannot un-merge",
            "Granularity loss if sub-themes were tracking distinct aspects",
        ],
        rationale="Same parent and compatible names",
    )


def _merge_theme(ctx: OperationContext) -> _Outcome:
    source = ctx.source_name or ""
    destination = ctx.destination_name or ""
    source_category = ctx.source_category
    destination_category = ctx.destination_category

    if source_category and destination_category and source_category != destination_category:
        return _Outcome(
            Verdict.WORKAROUND, Confidence.MED, "merge-theme/category-mismatch",
            risks=[
                f"{source_category.value} and {destination_category.value} themes cannot share sub-themes",
                "Sentiment reporting would mix opposite signals",
            ],
            rationale="A Theme has exactly one category",
            workaround=(
                f'Change the category of "{source}" to {destination_category.value}, '
                f'then merge it into "{destination}".'
            ),
            workaround_type=WorkaroundType.CHANGE_CATEGORY,
            workaround_context=OperationContext(
                theme_name=source,
                source_name=source,
                destination_name=destination,
                current_category=source_category,
                new_category=destination_category,
            ),
        )

    return _Outcome(
        Verdict.APPROVE_WITH_CONDITIONS, Confidence.MED, "merge-theme/consolidate",
        risks=[
            "Irreversible structural change",
            "Sub-theme consolidation may lose granularity",
            "Historical trend analysis affected",
            "Extended backfill time for large volumes",
        ],
        rationale="Theme merges always consolidate sub-themes",
    )


def _split_subtheme(ctx: OperationContext) -> _Outcome:
    current = ctx.current_name or ""
    splits = ctx.proposed_splits
    siblings = _excluding(ctx.sibling_sub_themes, current)

    collisions = {name: find_exact_duplicate(name, siblings) for name in splits}
    if any(dup is not None for dup in collisions.values()):
        items = []
        for name in splits:
            dup = collisions[name]
            if dup is None:
                items.append(PartialItem(name=name, included=True, reason="New, distinct sub-theme"))
            else:
                items.append(PartialItem(
                    name=name, included=False,
                    reason=f'Duplicates existing sibling "{dup}"',
                ))
        return _Outcome(
            Verdict.PARTIAL, Confidence.MED, "split-subtheme/sibling-collision",
            risks=["Some proposed names duplicate existing siblings"],
            rationale="Duplicated names would split one issue across two sub-themes",
            partial_items=items,
        )

    if len(splits) > MAX_SPLIT_PARTS:
        return _Outcome(
            Verdict.APPROVE_WITH_CONDITIONS, Confidence.MED, "split-subtheme/over-fragmentation",
            risks=[
                f"{len(splits)} new sub-themes risks over-fragmenting the theme",
                "Low-volume sub-themes are hard to trend",
            ],
            rationale=f"More than {MAX_SPLIT_PARTS} proposed parts",
        )

    return _Outcome(
        Verdict.APPROVE_WITH_CONDITIONS, Confidence.MED, "split-subtheme/coverage-gap",
        risks=[
            "Coverage gaps may cause record loss",
            "Vague feedback won't redistribute cleanly",
        ],
        rationale="Every split needs the new parts to cover the old scope",
    )


def _create(ctx: OperationContext, op: OperationType) -> _Outcome:
    name = ctx.proposed_name or ctx.new_name or ""
    is_subtheme = op == OperationType.CREATE_SUBTHEME
    siblings = ctx.sibling_sub_themes if is_subtheme else ctx.sibling_themes
    rule = op.value

    duplicate = find_exact_duplicate(name, siblings)
    if duplicate is not None:
        return _Outcome(
            Verdict.REJECT, Confidence.HIGH, f"{rule}/duplicate",
            risks=[f'"{duplicate}" already exists at this level'],
            rationale="Duplicate siblings split reporting for one issue",
            workaround=f'Use the existing "{duplicate}" instead of creating a duplicate.',
        )

    if is_subtheme and is_generic_name(name):
        return _Outcome(
            Verdict.APPROVE_WITH_CONDITIONS, Confidence.MED, f"{rule}/generic-name",
            risks=[f'"{name}" is a catch-all name and will attract unrelated records'],
            rationale="Generic names reduce reporting precision",
        )

    if is_subtheme:
        risks = ["Low: Adding leaf node only, parent Theme/siblings unaffected"]
    else:
        risks = ["Wrong L3 placement may cause records not to flow correctly"]
    return _Outcome(
        Verdict.APPROVE, Confidence.HIGH, f"{rule}/clean",
        risks=risks,
        rationale="No duplicate sibling",
    )


def _change_theme_category(ctx: OperationContext) -> _Outcome:
    theme = ctx.theme_name or ctx.current_name or ""
    target = ctx.new_category
    target_label = target.value if target else "the new category"

    peers = [
        ref for ref in ctx.sibling_theme_categories
        if target is not None
        and ref.category == target
        and ref.name.strip().lower() != theme.strip().lower()
    ]
    if not peers:
        return _Outcome(
            Verdict.WORKAROUND, Confidence.MED, "change-theme-category/no-peer",
            risks=[
                f"No sibling theme is filed under {target_label}",
                "All sub-themes inherit the new category",
            ],
            rationale="Changing category in place would leave the theme isolated",
            workaround=f'Create a new {target_label} theme for "{theme}" and move the matching sub-themes into it.',
            workaround_type=WorkaroundType.CREATE_THEME,
            workaround_context=OperationContext(
                proposed_name=theme,
                new_category=target,
                l3_name=ctx.l3_name,
            ),
        )

    risks = [
        "All sub-themes inherit the new category",
        "Dashboard/filter counts will shift",
        "Saved views filtered by old category will exclude this Theme",
    ]
    volume = ctx.theme_volume or _volume(ctx)
    if volume > HIGH_VOLUME_THRESHOLD:
        return _Outcome(
            Verdict.APPROVE_WITH_CONDITIONS, Confidence.MED, "change-theme-category/high-volume",
            risks=[f"{volume} records change sentiment bucket"] + risks,
            rationale=f"Volume exceeds {HIGH_VOLUME_THRESHOLD} records",
        )
    return _Outcome(
        Verdict.APPROVE, Confidence.HIGH, "change-theme-category/clean",
        risks=risks,
        rationale=f'Sibling "{peers[0].name}" is already filed under {target_label}',
    )


def _promote_subtheme(ctx: OperationContext) -> _Outcome:
    current = ctx.current_name or ""
    return _Outcome(
        Verdict.WORKAROUND, Confidence.MED, "promote-subtheme/create-theme",
        risks=[
            "Promotion is not a native taxonomy operation",
            "Records must be re-pointed at the new theme",
        ],
        rationale="Promotion is expressed as create-theme plus a move",
        workaround=f'Create a theme named "{current}" under the same keyword, then retire the sub-theme.',
        workaround_type=WorkaroundType.CREATE_THEME,
        workaround_context=OperationContext(
            proposed_name=current,
            source_name=current,
            l3_name=ctx.l3_name,
            new_category=ctx.current_category,
        ),
    )


_PROCEDURES: dict[OperationType, Callable[[OperationContext], _Outcome]] = {
    OperationType.RENAME_SUBTHEME: _rename_subtheme,
    OperationType.RENAME_THEME: _rename_theme,
    OperationType.DELETE_SUBTHEME: _delete_subtheme,
    OperationType.DELETE_KEYWORD: _delete_keyword,
    OperationType.MERGE_SUBTHEME: _merge_subtheme,
    OperationType.MERGE_THEME: _merge_theme,
    OperationType.SPLIT_SUBTHEME: _split_subtheme,
    OperationType.CREATE_SUBTHEME: lambda ctx: _create(ctx, OperationType.CREATE_SUBTHEME),
    OperationType.CREATE_THEME: lambda ctx: _create(ctx, OperationType.CREATE_THEME),
    OperationType.CHANGE_THEME_CATEGORY: _change_theme_category,
    OperationType.PROMOTE_SUBTHEME: _promote_subtheme,
}


def _multi_parent_violation(op: OperationType, ctx: OperationContext) -> Optional[_Outcome]:
    """A SubTheme reporting more than one parent is rejected outright."""
    if op not in SUBTHEME_OPERATIONS:
        return None
    parents = _distinct_parents(ctx)
    if len(parents) < 2:
        return None
    subject = ctx.current_name or ctx.source_name or ""
    return _Outcome(
        Verdict.REJECT, Confidence.HIGH, "subtheme/multi-parent",
        risks=[
            f'"{subject}" reports {len(parents)} parent themes: {", ".join(parents)}',
            "A sub-theme must belong to exactly one parent theme",
        ],
        rationale="Taxonomy invariant violated: multi-parent sub-theme",
        workaround="Resolve the duplicate parent mapping before editing this sub-theme.",
    )


# ---------------------------------------------------------------------------
# PolicyEvaluator
# ---------------------------------------------------------------------------

class PolicyEvaluator:
    """
    Deterministic local evaluator.

    Runs the ordered decision table for the operation kind and never raises
    on missing context.
    """

    def evaluate(self, operation_type: Any, context: Any = None) -> EvaluationResult:
        """
        Evaluate a proposed taxonomy edit.

        Args:
            operation_type: OperationType or its wire string.
            context:        OperationContext, a camelCase/snake_case dict, or None.

        Returns:
            EvaluationResult with verdict, confidence and risks.
        """
        ctx = context if isinstance(context, OperationContext) else OperationContext.model_validate(context or {})
        op = OperationType.parse(operation_type)

        if op is None:
            return EvaluationResult(
                verdict=Verdict.WORKAROUND,
                confidence=Confidence.LOW,
                operation_type=None,
                operation_risk=get_operation_risk(operation_type),
                risks=[f"Unrecognised operation type: {operation_type!r}"],
                workaround="Express the edit as one of the supported taxonomy operations.",
                rationale=["Unknown operations fail closed"],
                matched_rules=["unknown-operation"],
            )

        outcome = _multi_parent_violation(op, ctx) or _PROCEDURES[op](ctx)

        risks = list(outcome.risks)
        missing = ctx.missing_fields(op)
        if missing:
            risks.append(
                "Context is missing: " + ", ".join(to_camel(name) for name in missing)
            )

        return EvaluationResult(
            verdict=outcome.verdict,
            confidence=outcome.confidence,
            operation_type=op,
            operation_risk=get_operation_risk(op),
            risks=risks,
            workaround=outcome.workaround,
            workaround_type=outcome.workaround_type,
            workaround_context=outcome.workaround_context,
            partial_items=list(outcome.partial_items),
            rationale=[outcome.rationale],
            matched_rules=[outcome.rule],
        )
