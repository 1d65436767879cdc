"""
Operation Taxonomy
Shared vocabulary for proposed taxonomy edits.

Defines the operation kinds, their risk levels, the verdict vocabulary
returned by the policy evaluator, and the loosely-typed OperationContext
every component reads from. All context fields are optional so that the
evaluator stays total: an absent field falls back to a deterministic
default instead of raising.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class OperationType(str, Enum):
    RENAME_SUBTHEME = "rename-subtheme"
    RENAME_THEME = "rename-theme"
    DELETE_SUBTHEME = "delete-subtheme"
    DELETE_KEYWORD = "delete-keyword"
    MERGE_SUBTHEME = "merge-subtheme"
    MERGE_THEME = "merge-theme"
    SPLIT_SUBTHEME = "split-subtheme"
    CREATE_SUBTHEME = "create-subtheme"
    CREATE_THEME = "create-theme"
    CHANGE_THEME_CATEGORY = "change-theme-category"
    PROMOTE_SUBTHEME = "promote-subtheme"

    @classmethod
    def parse(cls, value: Any) -> Optional["OperationType"]:
        """Return the matching kind, or None for anything unrecognised."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


class OperationRisk(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class NodeLevel(str, Enum):
    L1 = "L1"
    L2 = "L2"
    L3 = "L3"
    THEME = "Theme"
    SUBTHEME = "SubTheme"


class ThemeCategory(str, Enum):
    COMPLAINT = "COMPLAINT"
    IMPROVEMENT = "IMPROVEMENT"
    PRAISE = "PRAISE"
    HELP = "HELP"


class Verdict(str, Enum):
    APPROVE = "APPROVE"
    APPROVE_WITH_CONDITIONS = "APPROVE WITH CONDITIONS"
    REJECT = "REJECT"
    WORKAROUND = "WORKAROUND"
    PARTIAL = "PARTIAL"

    @classmethod
    def parse(cls, value: Any) -> Optional["Verdict"]:
        """Accept both the wire form and the underscored member name."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        normalized = " ".join(value.replace("_", " ").upper().split())
        for verdict in cls:
            if verdict.value == normalized:
                return verdict
        return None


class Confidence(str, Enum):
    HIGH = "High"
    MED = "Med"
    LOW = "Low"

    @classmethod
    def parse(cls, value: Any) -> Optional["Confidence"]:
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        lowered = value.strip().lower()
        if lowered == "high":
            return cls.HIGH
        if lowered in ("med", "medium"):
            return cls.MED
        if lowered == "low":
            return cls.LOW
        return None


class WorkaroundType(str, Enum):
    TRANSFER_THEN_MERGE = "transfer-then-merge"
    MERGE_SIBLINGS = "merge-siblings"
    MERGE_KEYWORD = "merge-keyword"
    MOVE_TO_PARENT = "move-to-parent"
    MERGE_PARENTS = "merge-parents"
    CHANGE_CATEGORY = "change-category"
    CREATE_THEME = "create-theme"

    @classmethod
    def parse(cls, value: Any) -> Optional["WorkaroundType"]:
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


# ---------------------------------------------------------------------------
# Operation configuration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class OperationConfig:
    type: OperationType
    risk: OperationRisk
    description: str
    level: NodeLevel


OPERATION_CONFIGS: dict[OperationType, OperationConfig] = {
    OperationType.RENAME_SUBTHEME: OperationConfig(
        OperationType.RENAME_SUBTHEME, OperationRisk.LOW,
        "Rename a sub-theme while keeping records mapped", NodeLevel.SUBTHEME,
    ),
    OperationType.RENAME_THEME: OperationConfig(
        OperationType.RENAME_THEME, OperationRisk.LOW,
        "Rename a theme while keeping records mapped", NodeLevel.THEME,
    ),
    OperationType.DELETE_SUBTHEME: OperationConfig(
        OperationType.DELETE_SUBTHEME, OperationRisk.MEDIUM,
        "Archive a sub-theme and handle orphaned records", NodeLevel.SUBTHEME,
    ),
    OperationType.DELETE_KEYWORD: OperationConfig(
        OperationType.DELETE_KEYWORD, OperationRisk.HIGH,
        "Delete a keyword (L3) from the taxonomy", NodeLevel.L3,
    ),
    OperationType.MERGE_SUBTHEME: OperationConfig(
        OperationType.MERGE_SUBTHEME, OperationRisk.HIGH,
        "Merge two sub-themes under the same parent theme", NodeLevel.SUBTHEME,
    ),
    OperationType.MERGE_THEME: OperationConfig(
        OperationType.MERGE_THEME, OperationRisk.HIGH,
        "Merge two themes, consolidating all sub-themes", NodeLevel.THEME,
    ),
    OperationType.SPLIT_SUBTHEME: OperationConfig(
        OperationType.SPLIT_SUBTHEME, OperationRisk.HIGH,
        "Split a sub-theme into multiple new sub-themes", NodeLevel.SUBTHEME,
    ),
    OperationType.CREATE_SUBTHEME: OperationConfig(
        OperationType.CREATE_SUBTHEME, OperationRisk.LOW,
        "Create a new sub-theme under an existing theme", NodeLevel.SUBTHEME,
    ),
    OperationType.CREATE_THEME: OperationConfig(
        OperationType.CREATE_THEME, OperationRisk.MEDIUM,
        "Create a new theme under an L3 keyword", NodeLevel.THEME,
    ),
    OperationType.CHANGE_THEME_CATEGORY: OperationConfig(
        OperationType.CHANGE_THEME_CATEGORY, OperationRisk.LOW,
        "Change the category of a theme (cascades to sub-themes)", NodeLevel.THEME,
    ),
    OperationType.PROMOTE_SUBTHEME: OperationConfig(
        OperationType.PROMOTE_SUBTHEME, OperationRisk.MEDIUM,
        "Promote a sub-theme to a theme of its own", NodeLevel.SUBTHEME,
    ),
}

# Operations whose subject is a SubTheme (the single-parent invariant applies)
SUBTHEME_OPERATIONS = {
    op for op, cfg in OPERATION_CONFIGS.items() if cfg.level == NodeLevel.SUBTHEME
}


def get_operation_risk(operation_type: Any) -> OperationRisk:
    op = OperationType.parse(operation_type)
    if op is None:
        return OperationRisk.MEDIUM
    return OPERATION_CONFIGS[op].risk


def is_high_risk(operation_type: Any) -> bool:
    return get_operation_risk(operation_type) == OperationRisk.HIGH


def infer_operation_type(
    action: str,
    node_level: NodeLevel | str | None,
    field: str | None = None,
) -> OperationType:
    """Map a free-form UI action plus the node level to an operation kind."""
    lowered = action.lower()
    try:
        level = NodeLevel(node_level) if node_level else None
    except ValueError:
        level = None

    if "promote" in lowered and level == NodeLevel.SUBTHEME:
        return OperationType.PROMOTE_SUBTHEME

    if "rename" in lowered or "change name" in lowered or field == "name":
        if level == NodeLevel.SUBTHEME:
            return OperationType.RENAME_SUBTHEME
        if level == NodeLevel.THEME:
            return OperationType.RENAME_THEME

    if "delete" in lowered or "remove" in lowered:
        if level == NodeLevel.SUBTHEME:
            return OperationType.DELETE_SUBTHEME
        if level == NodeLevel.L3:
            return OperationType.DELETE_KEYWORD

    if "merge" in lowered or "combine" in lowered:
        if level == NodeLevel.SUBTHEME:
            return OperationType.MERGE_SUBTHEME
        if level == NodeLevel.THEME:
            return OperationType.MERGE_THEME

    if "split" in lowered and level == NodeLevel.SUBTHEME:
        return OperationType.SPLIT_SUBTHEME

    if "create" in lowered or "add" in lowered or "new" in lowered:
        # Creating under a Theme adds a sub-theme; under an L3 keyword, a theme
        if level == NodeLevel.THEME:
            return OperationType.CREATE_SUBTHEME
        if level == NodeLevel.L3:
            return OperationType.CREATE_THEME

    if "category" in lowered or field == "category":
        return OperationType.CHANGE_THEME_CATEGORY

    if level == NodeLevel.THEME:
        return OperationType.RENAME_THEME
    return OperationType.RENAME_SUBTHEME


# ---------------------------------------------------------------------------
# Context + result payloads
# ---------------------------------------------------------------------------

def _normalize_category(value: Any) -> Any:
    # Tree exports use lowercase category names
    if isinstance(value, str):
        return value.strip().upper() or None
    return value


class _WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python; unknown keys ignored."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class SubThemeRef(_WireModel):
    name: str
    parent_theme: str = ""


class ThemeRef(_WireModel):
    name: str
    category: Optional[ThemeCategory] = None

    @field_validator("category", mode="before")
    @classmethod
    def _upper_category(cls, value: Any) -> Any:
        return _normalize_category(value)


class VolumeRef(_WireModel):
    name: str
    count: int = 0


class PartialItem(_WireModel):
    name: str
    included: bool
    reason: str = ""


# Fields each operation reads; used by OperationContext.missing_fields()
_REQUIRED_FIELDS: dict[OperationType, tuple[str, ...]] = {
    OperationType.RENAME_SUBTHEME: ("current_name", "new_name"),
    OperationType.RENAME_THEME: ("current_name", "new_name"),
    OperationType.DELETE_SUBTHEME: ("current_name",),
    OperationType.DELETE_KEYWORD: ("current_name",),
    OperationType.MERGE_SUBTHEME: ("source_name", "destination_name"),
    OperationType.MERGE_THEME: ("source_name", "destination_name"),
    OperationType.SPLIT_SUBTHEME: ("current_name", "proposed_splits"),
    OperationType.CREATE_SUBTHEME: ("proposed_name",),
    OperationType.CREATE_THEME: ("proposed_name",),
    OperationType.CHANGE_THEME_CATEGORY: ("theme_name", "new_category"),
    OperationType.PROMOTE_SUBTHEME: ("current_name",),
}

# Creation accepts the new name under either key
_FIELD_ALTERNATES: dict[str, tuple[str, ...]] = {
    "proposed_name": ("new_name",),
}


class OperationContext(_WireModel):
    # Current entity
    current_name: Optional[str] = None
    new_name: Optional[str] = None
    proposed_name: Optional[str] = None

    # Merge
    source_name: Optional[str] = None
    destination_name: Optional[str] = None
    source_parent_theme: Optional[str] = None
    destination_parent_theme: Optional[str] = None

    # Categories
    current_category: Optional[ThemeCategory] = None
    new_category: Optional[ThemeCategory] = None
    source_category: Optional[ThemeCategory] = None
    destination_category: Optional[ThemeCategory] = None

    # Split
    proposed_splits: list[str] = Field(default_factory=list)

    # Taxonomy path
    l1_name: Optional[str] = None
    l2_name: Optional[str] = None
    l3_name: Optional[str] = None
    l3_path: Optional[str] = None
    theme_name: Optional[str] = None
    sub_theme_name: Optional[str] = None
    parent_theme_name: Optional[str] = None
    parent_theme_names: list[str] = Field(default_factory=list)

    # Neighbourhood
    sub_theme_names: list[str] = Field(default_factory=list)
    sibling_themes: list[str] = Field(default_factory=list)
    sibling_sub_themes: list[str] = Field(default_factory=list)
    sibling_keywords: list[str] = Field(default_factory=list)
    cross_theme_sub_themes: list[SubThemeRef] = Field(default_factory=list)
    sibling_theme_categories: list[ThemeRef] = Field(default_factory=list)

    # Volumes
    volume: Optional[int] = None
    theme_volume: Optional[int] = None
    sub_theme_volumes: list[VolumeRef] = Field(default_factory=list)

    @field_validator(
        "current_category", "new_category", "source_category",
        "destination_category", mode="before",
    )
    @classmethod
    def _upper_categories(cls, value: Any) -> Any:
        return _normalize_category(value)

    @property
    def target_name(self) -> str:
        """Best available name for the entity the operation is about."""
        return (
            self.current_name
            or self.source_name
            or self.proposed_name
            or self.new_name
            or self.theme_name
            or self.sub_theme_name
            or ""
        )

    def missing_fields(self, operation_type: Any) -> list[str]:
        """List the fields this operation reads that were not supplied.

        Never raises: the evaluator substitutes defaults for anything
        missing, this is only advisory (surfaced as a risk string).
        """
        op = OperationType.parse(operation_type)
        if op is None:
            return []
        missing: list[str] = []
        for name in _REQUIRED_FIELDS[op]:
            candidates = (name, *_FIELD_ALTERNATES.get(name, ()))
            if all(getattr(self, c) in (None, "", []) for c in candidates):
                missing.append(name)
        return missing

    def to_wire(self, partial: bool = False) -> dict[str, Any]:
        """camelCase dict; `partial` also drops fields left at their default."""
        return self.model_dump(
            by_alias=True, exclude_none=True, exclude_defaults=partial, mode="json",
        )
