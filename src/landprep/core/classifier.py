# src/landprep/core/classifier.py
"""
Attribute classification of multi-category source layers into themes.

A :class:`RuleSet` is the declarative ``{theme: [patterns]}`` table of one
dataset family. Matching is case-sensitive; values matching no rule are
dropped silently, since only the listed categories are of interest.
"""

from dataclasses import dataclass
from itertools import combinations
from typing import Dict, List, Literal, Optional, Tuple

import geopandas as gpd
import pandas as pd
from loguru import logger

from landprep.config.models import DatasetConfig

MatchMode = Literal["substring", "exact"]


@dataclass(frozen=True)
class CategoryRule:
    """Patterns selecting the features of one theme."""

    theme: str
    patterns: Tuple[str, ...] = ()
    match: MatchMode = "substring"
    dissolve: bool = True

    @property
    def takes_all(self) -> bool:
        """A rule without patterns takes every feature of its dataset."""
        return not self.patterns

    def mask(self, values: pd.Series) -> pd.Series:
        """Boolean mask of the values matching at least one pattern."""
        if self.takes_all:
            return pd.Series(True, index=values.index)

        text = values.astype("string")
        if self.match == "exact":
            hits = text.isin(self.patterns)
        else:
            hits = pd.Series(False, index=values.index)
            for pattern in self.patterns:
                hits |= text.str.contains(pattern, case=True, regex=False)
        return hits.fillna(False).astype(bool)


@dataclass(frozen=True)
class RuleSet:
    """All category rules of one dataset family."""

    dataset: str
    column: Optional[str]
    rules: Tuple[CategoryRule, ...]

    @classmethod
    def from_config(cls, config: DatasetConfig) -> "RuleSet":
        rules = tuple(
            CategoryRule(
                theme=theme,
                patterns=tuple(theme_cfg.patterns),
                match=config.match,
                dissolve=theme_cfg.dissolve,
            )
            for theme, theme_cfg in config.themes.items()
        )
        return cls(dataset=config.name, column=config.column, rules=rules)

    @property
    def themes(self) -> List[str]:
        return [rule.theme for rule in self.rules]

    def get(self, theme: str) -> CategoryRule:
        for rule in self.rules:
            if rule.theme == theme:
                return rule
        raise KeyError(f"No rule for theme '{theme}' in dataset '{self.dataset}'")


def classify(
    gdf: gpd.GeoDataFrame, column: Optional[str], rule: CategoryRule
) -> gpd.GeoDataFrame:
    """
    Features of ``gdf`` whose ``column`` value matches ``rule``.

    An empty result is valid: a tile may hold none of a theme.
    """
    if rule.takes_all:
        return gdf
    if column is None:
        raise ValueError(f"Theme '{rule.theme}' has patterns but no column to match")
    if column not in gdf.columns:
        raise KeyError(f"Column '{column}' not found. Available: {list(gdf.columns)}")

    return gdf[rule.mask(gdf[column])]


def classify_all(
    gdf: gpd.GeoDataFrame, rules: RuleSet
) -> Dict[str, gpd.GeoDataFrame]:
    """Apply every rule of a set, one subset per theme."""
    subsets = {rule.theme: classify(gdf, rules.column, rule) for rule in rules.rules}
    counts = ", ".join(f"{t}={len(s)}" for t, s in subsets.items())
    logger.debug(f"Classified {len(gdf)} features: {counts}")
    return subsets


def check_rule_overlap(rules: RuleSet) -> List[Tuple[str, str, str]]:
    """
    Statically detect patterns that can select the same value for two themes.

    Returns:
        ``(theme_a, theme_b, reason)`` triples; empty when the rules are
        mutually exclusive as far as their patterns show
    """
    overlaps = []
    for first, second in combinations(rules.rules, 2):
        if first.takes_all or second.takes_all:
            overlaps.append(
                (first.theme, second.theme, "a theme without patterns takes every feature")
            )
            continue

        for a in first.patterns:
            for b in second.patterns:
                if a == b:
                    overlaps.append((first.theme, second.theme, f"same pattern '{a}'"))
                elif rules.column is not None and first.match == "substring":
                    if a in b or b in a:
                        overlaps.append(
                            (first.theme, second.theme, f"'{a}' and '{b}' overlap as substrings")
                        )
    return overlaps


def find_ambiguous_features(gdf: gpd.GeoDataFrame, rules: RuleSet) -> pd.Series:
    """
    Number of themes each feature matches, restricted to features matching more than one.

    The data-level counterpart of :func:`check_rule_overlap`.
    """
    pattern_rules = [rule for rule in rules.rules if not rule.takes_all]
    if not pattern_rules or rules.column is None or gdf.empty:
        return pd.Series(dtype="int64")

    values = gdf[rules.column]
    hits = sum(rule.mask(values).astype("int64") for rule in pattern_rules)
    return hits[hits > 1]
