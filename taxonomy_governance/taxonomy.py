"""
Taxonomy Tree
Read-only view of the L1 > L2 > L3 > Theme > SubTheme hierarchy.

The governance core never mutates the tree. It reads it to assemble the
OperationContext an edit is evaluated against: names, siblings,
cross-theme sub-themes, categories, volumes and every parent a sub-theme
reports.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator, Optional

from taxonomy_governance.operations import (
    NodeLevel,
    OperationContext,
    SubThemeRef,
    ThemeCategory,
    ThemeRef,
    VolumeRef,
)

# Category names used by older tree exports
_CATEGORY_ALIASES = {"QUESTION": ThemeCategory.HELP}

_KEYWORD_LEVELS = (NodeLevel.L1, NodeLevel.L2, NodeLevel.L3)


def _parse_category(value: Any) -> Optional[ThemeCategory]:
    if not isinstance(value, str):
        return None
    upper = value.strip().upper()
    if upper in _CATEGORY_ALIASES:
        return _CATEGORY_ALIASES[upper]
    try:
        return ThemeCategory(upper)
    except ValueError:
        return None


def _count(data: dict) -> int:
    return int(data.get("count", data.get("recordCount", 0)) or 0)


# ---------------------------------------------------------------------------
# Nodes
# ---------------------------------------------------------------------------

@dataclass
class SubTheme:
    id: str
    name: str
    count: int = 0


@dataclass
class Theme:
    id: str
    name: str
    category: Optional[ThemeCategory] = None
    count: int = 0
    sub_themes: list[SubTheme] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "Theme":
        children = data.get("subThemes") or data.get("sub_themes") or data.get("children") or []
        return cls(
            id=str(data.get("id", data.get("name", ""))),
            name=data.get("name", ""),
            category=_parse_category(data.get("category")),
            count=_count(data),
            sub_themes=[
                SubTheme(id=str(c.get("id", c.get("name", ""))), name=c.get("name", ""), count=_count(c))
                for c in children
            ],
        )


@dataclass
class TaxonomyNode:
    id: str
    name: str
    level: NodeLevel
    count: int = 0
    children: list["TaxonomyNode"] = field(default_factory=list)
    themes: list[Theme] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict, depth: int = 0) -> "TaxonomyNode":
        level = _KEYWORD_LEVELS[min(depth, len(_KEYWORD_LEVELS) - 1)]
        return cls(
            id=str(data.get("id", data.get("name", ""))),
            name=data.get("name", ""),
            level=level,
            count=_count(data),
            children=[cls.from_dict(c, depth + 1) for c in data.get("children") or []],
            themes=[Theme.from_dict(t) for t in data.get("themes") or []],
        )


@dataclass(frozen=True)
class KeywordPath:
    """One L1 > L2 > L3 route through the tree; L2/L3 may be absent in shallow trees."""
    nodes: tuple[TaxonomyNode, ...]

    def name_at(self, level: NodeLevel) -> Optional[str]:
        for node in self.nodes:
            if node.level == level:
                return node.name
        return None

    @property
    def label(self) -> str:
        return " > ".join(node.name for node in self.nodes)


# ---------------------------------------------------------------------------
# Taxonomy
# ---------------------------------------------------------------------------

class Taxonomy:
    def __init__(self, roots: list[TaxonomyNode]):
        self.roots = roots

    @classmethod
    def from_dict(cls, data: Any) -> "Taxonomy":
        """Accepts {"level1": [...]}, {"nodes": [...]} or a bare list of L1 nodes."""
        if isinstance(data, dict):
            items = data.get("level1") or data.get("nodes") or []
        else:
            items = data or []
        return cls([TaxonomyNode.from_dict(item) for item in items])

    # -- traversal ---------------------------------------------------------

    def _walk(self) -> Iterator[tuple[tuple[TaxonomyNode, ...], TaxonomyNode]]:
        stack = [((root,), root) for root in reversed(self.roots)]
        while stack:
            path, node = stack.pop()
            yield path, node
            for child in reversed(node.children):
                stack.append((path + (child,), child))

    def _theme_locations(self) -> Iterator[tuple[KeywordPath, Theme]]:
        for path, node in self._walk():
            for theme in node.themes:
                yield KeywordPath(path), theme

    def find_keyword(self, keyword_id: str) -> Optional[TaxonomyNode]:
        for _, node in self._walk():
            if node.id == keyword_id:
                return node
        return None

    def find_theme(self, theme_id: str) -> Optional[Theme]:
        for _, theme in self._theme_locations():
            if theme.id == theme_id:
                return theme
        return None

    def find_subtheme(self, subtheme_id: str) -> Optional[SubTheme]:
        for _, theme in self._theme_locations():
            for sub in theme.sub_themes:
                if sub.id == subtheme_id:
                    return sub
        return None

    def parents_of_subtheme(self, name: str) -> list[str]:
        """Every distinct Theme name under which a sub-theme of this name appears."""
        wanted = name.strip().lower()
        parents: list[str] = []
        for _, theme in self._theme_locations():
            if any(sub.name.strip().lower() == wanted for sub in theme.sub_themes):
                if theme.name not in parents:
                    parents.append(theme.name)
        return parents

    def keyword_paths_for_theme(self, theme_name: str) -> list[KeywordPath]:
        wanted = theme_name.strip().lower()
        return [path for path, theme in self._theme_locations() if theme.name.strip().lower() == wanted]

    # -- context assembly --------------------------------------------------

    @staticmethod
    def _path_fields(path: KeywordPath) -> dict[str, Any]:
        return {
            "l1_name": path.name_at(NodeLevel.L1),
            "l2_name": path.name_at(NodeLevel.L2),
            "l3_name": path.name_at(NodeLevel.L3),
            "l3_path": path.label,
        }

    def _locate_subtheme(self, subtheme_id: str) -> Optional[tuple[KeywordPath, Theme, SubTheme]]:
        for path, theme in self._theme_locations():
            for sub in theme.sub_themes:
                if sub.id == subtheme_id:
                    return path, theme, sub
        return None

    def _locate_theme(self, theme_id: str) -> Optional[tuple[KeywordPath, TaxonomyNode, Theme]]:
        for path, node in self._walk():
            for theme in node.themes:
                if theme.id == theme_id:
                    return KeywordPath(path), node, theme
        return None

    def context_for_subtheme(self, subtheme_id: str, **overrides: Any) -> OperationContext:
        located = self._locate_subtheme(subtheme_id)
        if located is None:
            raise KeyError(subtheme_id)
        path, parent, sub = located

        cross: list[SubThemeRef] = []
        for _, theme in self._theme_locations():
            if theme.name == parent.name:
                continue
            for other in theme.sub_themes:
                ref = SubThemeRef(name=other.name, parent_theme=theme.name)
                if ref not in cross:
                    cross.append(ref)

        data: dict[str, Any] = {
            **self._path_fields(path),
            "current_name": sub.name,
            "sub_theme_name": sub.name,
            "source_name": sub.name,
            "theme_name": parent.name,
            "parent_theme_name": parent.name,
            "source_parent_theme": parent.name,
            "parent_theme_names": self.parents_of_subtheme(sub.name),
            "current_category": parent.category,
            "sibling_sub_themes": [s.name for s in parent.sub_themes if s.id != sub.id],
            "cross_theme_sub_themes": cross,
            "volume": sub.count,
            "theme_volume": parent.count,
            "sub_theme_volumes": [VolumeRef(name=s.name, count=s.count) for s in parent.sub_themes],
        }
        data.update(overrides)
        return OperationContext.model_validate(data)

    def context_for_theme(self, theme_id: str, **overrides: Any) -> OperationContext:
        located = self._locate_theme(theme_id)
        if located is None:
            raise KeyError(theme_id)
        path, keyword, theme = located
        siblings = [t for t in keyword.themes if t.id != theme.id]

        data: dict[str, Any] = {
            **self._path_fields(path),
            "current_name": theme.name,
            "theme_name": theme.name,
            "source_name": theme.name,
            "current_category": theme.category,
            "source_category": theme.category,
            "parent_theme_name": theme.name,
            "sibling_themes": [t.name for t in siblings],
            "sibling_theme_categories": [ThemeRef(name=t.name, category=t.category) for t in siblings],
            "sibling_sub_themes": [s.name for s in theme.sub_themes],
            "sub_theme_names": [s.name for s in theme.sub_themes],
            "sub_theme_volumes": [VolumeRef(name=s.name, count=s.count) for s in theme.sub_themes],
            "volume": theme.count,
            "theme_volume": theme.count,
        }
        data.update(overrides)
        return OperationContext.model_validate(data)

    def context_for_keyword(self, keyword_id: str, **overrides: Any) -> OperationContext:
        for path, node in self._walk():
            if node.id == keyword_id:
                break
        else:
            raise KeyError(keyword_id)

        parent = path[-2] if len(path) > 1 else None
        peers = parent.children if parent is not None else self.roots
        sub_theme_names: list[str] = []
        for _, inner in Taxonomy([node])._theme_locations():
            sub_theme_names.extend(s.name for s in inner.sub_themes)

        data: dict[str, Any] = {
            **self._path_fields(KeywordPath(path)),
            "current_name": node.name,
            "sibling_keywords": [p.name for p in peers if p.id != node.id],
            "sibling_themes": [t.name for t in node.themes],
            "sibling_theme_categories": [ThemeRef(name=t.name, category=t.category) for t in node.themes],
            "sub_theme_names": sub_theme_names,
            "volume": node.count,
        }
        data.update(overrides)
        return OperationContext.model_validate(data)
