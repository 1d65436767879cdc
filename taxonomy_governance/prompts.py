"""
Decision Backend Prompts
Instruction text sent to the remote decision backend.

The same text is echoed back in the `prompt` field of every /evaluate
response, so it is generated for local evaluations too. Absent context
fields render as bracketed placeholders.
"""

from __future__ import annotations

from typing import Any, Optional

from taxonomy_governance.operations import OperationContext, OperationType

RESPONSE_FORMAT = """Return your response in this format:

**Operations Confidence**: [High/Med/Low]
**Taxonomy Path(s)**: [every affected L1 > L2 > L3 > Theme > SubTheme path]
**Operation Evaluation**: [key findings]
**Risks**: [one risk per bullet]
**Verdict**: [APPROVE / APPROVE WITH CONDITIONS / REJECT / WORKAROUND / PARTIAL]
[One-line rationale]
**Workaround** (if Verdict is WORKAROUND): an alternative built from supported operations."""


def _value(value: Any, placeholder: str) -> str:
    if value is None or value == "" or value == []:
        return f"[{placeholder}]"
    if isinstance(value, list):
        return ", ".join(str(v) for v in value)
    return str(getattr(value, "value", value))


def _subject_lines(op: OperationType, ctx: OperationContext) -> list[str]:
    if op == OperationType.RENAME_SUBTHEME:
        return [
            f"SubTheme: {_value(ctx.current_name, 'CURRENT_SUBTHEME_NAME')}",
            f"Proposed New Name: {_value(ctx.new_name, 'NEW_SUBTHEME_NAME')}",
        ]
    if op == OperationType.RENAME_THEME:
        return [
            f"Theme: {_value(ctx.current_name, 'CURRENT_THEME_NAME')}",
            f"Proposed New Name: {_value(ctx.new_name, 'NEW_THEME_NAME')}",
        ]
    if op == OperationType.MERGE_SUBTHEME:
        return [
            f"Source SubTheme: {_value(ctx.source_name, 'SOURCE_SUBTHEME_NAME')}",
            f"Destination SubTheme: {_value(ctx.destination_name, 'DESTINATION_SUBTHEME_NAME')}",
        ]
    if op == OperationType.MERGE_THEME:
        return [
            f"Source Theme: {_value(ctx.source_name, 'SOURCE_THEME_NAME')}",
            f"Destination Theme: {_value(ctx.destination_name, 'DESTINATION_THEME_NAME')}",
        ]
    if op == OperationType.DELETE_SUBTHEME:
        return [f"SubTheme to Delete: {_value(ctx.current_name, 'SUBTHEME_NAME')}"]
    if op == OperationType.DELETE_KEYWORD:
        return [
            f"Keyword to Delete: {_value(ctx.current_name, 'L3_KEYWORD_NAME')}",
            f"Path: {_value(ctx.l1_name, 'L1')} > {_value(ctx.l2_name, 'L2')}",
        ]
    if op == OperationType.SPLIT_SUBTHEME:
        return [
            f"SubTheme to Split: {_value(ctx.current_name, 'SUBTHEME_NAME')}",
            f"Proposed New SubThemes: {_value(ctx.proposed_splits, 'PROPOSED_SUBTHEMES')}",
        ]
    if op == OperationType.CREATE_SUBTHEME:
        return [
            f"Parent Theme: {_value(ctx.parent_theme_name, 'PARENT_THEME_NAME')}",
            f"Proposed SubTheme Name: {_value(ctx.proposed_name, 'NEW_SUBTHEME_NAME')}",
        ]
    if op == OperationType.CREATE_THEME:
        return [
            f"L3 Keyword Path: {_value(ctx.l3_path or ctx.l3_name, 'L1 > L2 > L3')}",
            f"Proposed Theme Name: {_value(ctx.proposed_name, 'NEW_THEME_NAME')}",
        ]
    if op == OperationType.CHANGE_THEME_CATEGORY:
        return [
            f"Theme: {_value(ctx.theme_name, 'THEME_NAME')}",
            f"Current Category: {_value(ctx.current_category, 'CURRENT_CATEGORY')}",
            f"New Category: {_value(ctx.new_category, 'NEW_CATEGORY')}",
        ]
    return [
        f"SubTheme to Promote: {_value(ctx.current_name, 'SUBTHEME_NAME')}",
        f"Parent Theme: {_value(ctx.parent_theme_name or ctx.theme_name, 'PARENT_THEME_NAME')}",
    ]


_CHECKS: dict[OperationType, tuple[str, ...]] = {
    OperationType.RENAME_SUBTHEME: (
        "Taxonomy Path Lookup: list every path of the parent Theme",
        "Sibling Uniqueness: does the new name conflict with a sibling or a sub-theme of another Theme?",
        "Feedback Alignment: does the new name describe sample feedback better than the current one?",
        "Name Quality: concise, granular and self-explanatory",
    ),
    OperationType.RENAME_THEME: (
        "Taxonomy Path Lookup: list every L3 path the Theme is linked to",
        "Sibling Uniqueness: does the new name overlap with a sibling Theme?",
        "Sub-theme Alignment: do the existing sub-themes still fit the new name?",
    ),
    OperationType.MERGE_SUBTHEME: (
        "Same Parent Check: do both sub-themes share one parent Theme?",
        "Feedback Analysis: how similar is the feedback captured by each side?",
        "Volume Impact: record volume for source and destination",
    ),
    OperationType.MERGE_THEME: (
        "Category Check: do both Themes share one category?",
        "Sub-theme Consolidation: which sub-themes collide after the merge?",
        "Volume Impact: backfill size for the combined Theme",
    ),
    OperationType.DELETE_SUBTHEME: (
        "Catch-all Assessment: is this a bucket for unclassified feedback?",
        "Only Child Check: is this the only sub-theme of its parent?",
        "Orphan Risk: how many records lack an alternative prediction?",
    ),
    OperationType.DELETE_KEYWORD: (
        "Themes Affected: list every Theme and sub-theme under the keyword",
        "Multi-path Check: is the keyword shared by other paths?",
        "Alternative: is there a sibling keyword to merge into instead?",
    ),
    OperationType.SPLIT_SUBTHEME: (
        "Sibling Collision: do any proposed names already exist?",
        "Coverage: will the new sub-themes cover all existing feedback?",
        "Fragmentation: are the parts large enough to trend?",
    ),
    OperationType.CREATE_SUBTHEME: (
        "Sibling Uniqueness: does the name already exist under the parent Theme?",
        "Name Quality: concise, granular and self-explanatory",
    ),
    OperationType.CREATE_THEME: (
        "Sibling Uniqueness: does a Theme with this name exist under the keyword?",
        "Placement: will records flow to this L3 keyword?",
    ),
    OperationType.CHANGE_THEME_CATEGORY: (
        "Peer Check: does the keyword have other Themes in the new category?",
        "Cascade: every sub-theme inherits the new category",
        "Reporting: which dashboards and saved views shift?",
    ),
    OperationType.PROMOTE_SUBTHEME: (
        "Scope: is the sub-theme broad enough to stand as a Theme?",
        "Alternative: express promotion with supported operations",
    ),
}


def _generic_prompt(ctx: OperationContext) -> str:
    lines = [
        "Analyze the following taxonomy change request:",
        "",
        "Context:",
        f"- L1: {ctx.l1_name or 'N/A'}",
        f"- L2: {ctx.l2_name or 'N/A'}",
        f"- L3: {ctx.l3_name or 'N/A'}",
        f"- Theme: {ctx.theme_name or 'N/A'}",
        f"- SubTheme: {ctx.sub_theme_name or 'N/A'}",
        f"- Current Name: {ctx.current_name or 'N/A'}",
        f"- New Name: {ctx.new_name or 'N/A'}",
        "",
        "Analyze the current state at this path, the proposed change, its risks, "
        "and whether it should be approved.",
        "",
        RESPONSE_FORMAT,
    ]
    return "\n".join(lines)


def generate_prompt(operation_type: Any, context: Optional[OperationContext] = None) -> str:
    ctx = context or OperationContext()
    op = OperationType.parse(operation_type)
    if op is None:
        return _generic_prompt(ctx)

    lines = [f"Analyze the following {op.value} request:", ""]
    lines.extend(_subject_lines(op, ctx))
    lines.extend(["", "Perform the following checks:", ""])
    for number, check in enumerate(_CHECKS[op], start=1):
        lines.append(f"{number}. {check}")
    lines.extend(["", RESPONSE_FORMAT])
    return "\n".join(lines)
