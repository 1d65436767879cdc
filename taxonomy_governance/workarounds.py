"""
Workaround Templates
Fixed, per-kind step lists that replace a blocked or risky edit.

Each template reads the workaround context attached to the analysis and
yields the ordered steps that become DraftChanges when the user accepts
the workaround.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from taxonomy_governance.operations import NodeLevel, OperationContext, WorkaroundType


class IncompleteWorkaround(ValueError):
    """The workaround context lacks a name the template needs."""


@dataclass(frozen=True)
class WorkaroundStep:
    field: str
    node_name: str
    node_level: NodeLevel
    old_value: str
    new_value: str
    description: str


_Template = Callable[
    [OperationContext, Optional[str], Optional[NodeLevel]], list[WorkaroundStep],
]


def _require(value: Optional[str], what: str) -> str:
    if not value:
        raise IncompleteWorkaround(f"workaround needs a {what}")
    return value


def _category(value) -> str:
    return getattr(value, "value", value) or ""


def _transfer_then_merge(ctx: OperationContext, destination: Optional[str], level: Optional[NodeLevel]) -> list[WorkaroundStep]:
    source = _require(ctx.source_name, "source name")
    target = _require(destination or ctx.destination_name, "destination name")
    new_parent = _require(ctx.destination_parent_theme, "destination parent theme")
    return [
        WorkaroundStep(
            "move", source, NodeLevel.SUBTHEME, ctx.source_parent_theme or "", new_parent,
            f'Move "{source}" under "{new_parent}"',
        ),
        WorkaroundStep(
            "merge", source, NodeLevel.SUBTHEME, source, target,
            f'Merge "{source}" into "{target}"',
        ),
    ]


def _merge_into(default_level: Optional[NodeLevel]) -> _Template:
    def template(ctx: OperationContext, destination: Optional[str], level: Optional[NodeLevel]) -> list[WorkaroundStep]:
        level = default_level or level or NodeLevel.SUBTHEME
        source = _require(ctx.source_name, "source name")
        target = _require(destination or ctx.destination_name, "destination name")
        return [WorkaroundStep("merge", source, level, source, target, f'Merge "{source}" into "{target}"')]
    return template


def _move_to_parent(ctx: OperationContext, destination: Optional[str], level: Optional[NodeLevel]) -> list[WorkaroundStep]:
    source = _require(ctx.source_name, "source name")
    new_parent = _require(destination or ctx.destination_parent_theme, "destination parent theme")
    return [WorkaroundStep(
        "move", source, NodeLevel.SUBTHEME, ctx.source_parent_theme or "", new_parent,
        f'Move "{source}" under "{new_parent}"',
    )]


def _change_category(ctx: OperationContext, destination: Optional[str], level: Optional[NodeLevel]) -> list[WorkaroundStep]:
    theme = _require(ctx.theme_name or ctx.source_name, "theme name")
    target = _require(destination or ctx.destination_name, "destination name")
    new_category = _require(_category(ctx.new_category), "new category")
    return [
        WorkaroundStep(
            "category", theme, NodeLevel.THEME, _category(ctx.current_category), new_category,
            f'Change category of "{theme}" to {new_category}',
        ),
        WorkaroundStep(
            "merge", theme, NodeLevel.THEME, theme, target,
            f'Merge "{theme}" into "{target}"',
        ),
    ]


def _create_theme(ctx: OperationContext, destination: Optional[str], level: Optional[NodeLevel]) -> list[WorkaroundStep]:
    name = _require(destination or ctx.proposed_name, "theme name")
    return [WorkaroundStep("add", name, NodeLevel.THEME, "", name, f'Create theme "{name}"')]


WORKAROUND_TEMPLATES: dict[WorkaroundType, _Template] = {
    WorkaroundType.TRANSFER_THEN_MERGE: _transfer_then_merge,
    WorkaroundType.MERGE_SIBLINGS: _merge_into(None),
    WorkaroundType.MERGE_KEYWORD: _merge_into(NodeLevel.L3),
    WorkaroundType.MOVE_TO_PARENT: _move_to_parent,
    WorkaroundType.MERGE_PARENTS: _merge_into(NodeLevel.THEME),
    WorkaroundType.CHANGE_CATEGORY: _change_category,
    WorkaroundType.CREATE_THEME: _create_theme,
}


def workaround_steps(
    kind: WorkaroundType,
    context: Optional[OperationContext],
    destination_override: Optional[str] = None,
    node_level: Optional[NodeLevel] = None,
) -> list[WorkaroundStep]:
    """Expand a workaround kind into its ordered steps.

    `destination_override` replaces the suggested destination (the merge
    target, the new parent, or the new theme name, depending on the kind).
    `node_level` is the level of the edited node; sibling merges happen at
    that level.

    Raises:
        IncompleteWorkaround: a name the template needs is missing.
    """
    return WORKAROUND_TEMPLATES[kind](context or OperationContext(), destination_override, node_level)
