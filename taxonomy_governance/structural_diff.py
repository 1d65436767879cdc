"""
Structural Diff Builder
Turns a proposed operation into the ordered list of atomic tree mutations.

The builder encodes shape only: it never looks at volumes, siblings or
similarity, and it never fails. An unrecognised operation yields an empty
list, an absent name yields an empty string.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, NamedTuple, Optional

from taxonomy_governance.operations import (
    NodeLevel,
    OPERATION_CONFIGS,
    OperationContext,
    OperationType,
)

DELETED_MARKER = "[DELETED]"


# ---------------------------------------------------------------------------
# Domain types
# ---------------------------------------------------------------------------

class DiffKind(str, Enum):
    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"
    MOVED = "moved"


@dataclass(frozen=True)
class DiffItem:
    type: DiffKind
    node_type: NodeLevel
    node_name: str
    field: Optional[str] = None
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    moved_to: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": self.type.value,
            "nodeType": self.node_type.value,
            "nodeName": self.node_name,
        }
        if self.field is not None:
            data["field"] = self.field
        if self.old_value is not None:
            data["oldValue"] = self.old_value
        if self.new_value is not None:
            data["newValue"] = self.new_value
        if self.moved_to is not None:
            data["movedTo"] = self.moved_to
        return data


class ActionType(str, Enum):
    UPDATE = "UPDATE"
    CREATE = "CREATE"
    DELETE = "DELETE"
    MOVE = "MOVE"
    MERGE = "MERGE"
    SPLIT = "SPLIT"


class DraftFields(NamedTuple):
    field: str
    old_value: str
    new_value: str


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------

def _category(value: Any) -> str:
    if value is None:
        return ""
    return getattr(value, "value", str(value))


def build_diff(
    operation_type: Any,
    context: OperationContext,
    node_name: Optional[str] = None,
) -> list[DiffItem]:
    """Map an operation plus its context to ordered DiffItems.

    `node_name` is the name of the node the edit was started from; it is
    used when the context does not name the subject itself.
    """
    op = OperationType.parse(operation_type)
    if op is None:
        return []

    level = OPERATION_CONFIGS[op].level
    subject = context.current_name or node_name or ""

    if op in (OperationType.RENAME_SUBTHEME, OperationType.RENAME_THEME):
        return [DiffItem(
            DiffKind.MODIFIED, level, subject,
            field="name", old_value=subject, new_value=context.new_name or "",
        )]

    if op in (OperationType.DELETE_SUBTHEME, OperationType.DELETE_KEYWORD):
        return [DiffItem(DiffKind.DELETED, level, subject, old_value=subject)]

    if op in (OperationType.CREATE_SUBTHEME, OperationType.CREATE_THEME):
        name = context.proposed_name or context.new_name or ""
        return [DiffItem(DiffKind.ADDED, level, name, new_value=name)]

    if op in (OperationType.MERGE_SUBTHEME, OperationType.MERGE_THEME):
        source = context.source_name or subject
        return [DiffItem(
            DiffKind.MODIFIED, level, source,
            field="merge", old_value=source,
            new_value=context.destination_name or "",
        )]

    if op == OperationType.SPLIT_SUBTHEME:
        items = [DiffItem(DiffKind.DELETED, level, subject, old_value=subject)]
        for name in context.proposed_splits:
            items.append(DiffItem(DiffKind.ADDED, level, name, new_value=name))
        return items

    if op == OperationType.CHANGE_THEME_CATEGORY:
        theme = context.theme_name or subject
        return [DiffItem(
            DiffKind.MODIFIED, level, theme,
            field="category",
            old_value=_category(context.current_category),
            new_value=_category(context.new_category),
        )]

    # promote-subtheme: the sub-theme reappears as a Theme
    return [DiffItem(DiffKind.ADDED, NodeLevel.THEME, subject, new_value=subject)]


def describe_operation(
    operation_type: Any,
    context: OperationContext,
    node_name: Optional[str] = None,
) -> str:
    """Human-readable, one-line description of the edit."""
    op = OperationType.parse(operation_type)
    subject = context.current_name or node_name or context.target_name

    if op in (OperationType.RENAME_SUBTHEME, OperationType.RENAME_THEME):
        return f'Rename "{subject}" to "{context.new_name or ""}"'
    if op in (OperationType.MERGE_SUBTHEME, OperationType.MERGE_THEME):
        source = context.source_name or subject
        return f'Merge "{source}" into "{context.destination_name or ""}"'
    if op in (OperationType.DELETE_SUBTHEME, OperationType.DELETE_KEYWORD):
        return f'Delete "{subject}"'
    if op == OperationType.SPLIT_SUBTHEME:
        return f'Split "{subject}" into {len(context.proposed_splits)} sub-themes'
    if op in (OperationType.CREATE_SUBTHEME, OperationType.CREATE_THEME):
        return f'Create "{context.proposed_name or context.new_name or ""}"'
    if op == OperationType.CHANGE_THEME_CATEGORY:
        theme = context.theme_name or subject
        return (
            f'Change category of "{theme}" from '
            f"{_category(context.current_category) or 'unset'} to "
            f"{_category(context.new_category) or 'unset'}"
        )
    if op == OperationType.PROMOTE_SUBTHEME:
        return f'Promote "{subject}" to a Theme'
    return f'Modify "{subject}"'


# ---------------------------------------------------------------------------
# Draft change mapping
# ---------------------------------------------------------------------------

_FIELD_ACTIONS = {
    "delete": ActionType.DELETE,
    "add": ActionType.CREATE,
    "move": ActionType.MOVE,
    "merge": ActionType.MERGE,
}


def action_for_field(field: Optional[str]) -> ActionType:
    return _FIELD_ACTIONS.get(field or "", ActionType.UPDATE)


def group_action(fields: Iterable[Optional[str]]) -> ActionType:
    """Collapse the fields of a change group into one badge.

    A deleted node replaced by added nodes reads as a split; otherwise
    DELETE wins over CREATE, which wins over MOVE, which wins over UPDATE.
    """
    actions = {action_for_field(f) for f in fields}
    if ActionType.DELETE in actions and ActionType.CREATE in actions:
        return ActionType.SPLIT
    if ActionType.MERGE in actions:
        return ActionType.MERGE
    for action in (ActionType.DELETE, ActionType.CREATE, ActionType.MOVE):
        if action in actions:
            return action
    return ActionType.UPDATE


def draft_fields_for(item: DiffItem) -> DraftFields:
    if item.type == DiffKind.DELETED:
        return DraftFields("delete", item.old_value or item.node_name, DELETED_MARKER)
    if item.type == DiffKind.ADDED:
        return DraftFields("add", "", item.new_value or item.node_name)
    if item.type == DiffKind.MOVED:
        return DraftFields("move", item.old_value or "", item.moved_to or item.new_value or "")
    return DraftFields(item.field or "name", item.old_value or "", item.new_value or "")
