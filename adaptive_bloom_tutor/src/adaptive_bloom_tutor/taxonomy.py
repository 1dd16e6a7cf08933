"""
Bloom's Taxonomy Catalog

Static, ordered definition of the six cognitive levels used to tag quiz
questions and to bound level progression.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from adaptive_bloom_tutor.errors import InvalidLevel


@dataclass(frozen=True)
class TaxonomyLevel:
    """One cognitive level of Bloom's Taxonomy."""
    ordinal: int
    name: str
    description: str
    verbs: str = ""

    def to_dict(self) -> Dict[str, object]:
        return {
            "level": self.ordinal,
            "name": self.name,
            "description": self.description,
            "verbs": self.verbs,
        }


BLOOM_LEVELS: Tuple[TaxonomyLevel, ...] = (
    TaxonomyLevel(1, "Remember", "Recall facts and basic concepts",
                  "define, list, name, recall, identify"),
    TaxonomyLevel(2, "Understand", "Explain ideas or concepts",
                  "describe, explain, summarize, interpret, classify"),
    TaxonomyLevel(3, "Apply", "Use information in new situations",
                  "solve, demonstrate, apply, use, implement"),
    TaxonomyLevel(4, "Analyze", "Draw connections among ideas",
                  "compare, contrast, examine, differentiate, analyze"),
    TaxonomyLevel(5, "Evaluate", "Justify a decision or course of action",
                  "judge, critique, evaluate, justify, argue"),
    TaxonomyLevel(6, "Create", "Produce new or original work",
                  "design, construct, develop, formulate, create"),
)

MIN_ORDINAL = BLOOM_LEVELS[0].ordinal
MAX_ORDINAL = BLOOM_LEVELS[-1].ordinal


def _check_ordinal(n) -> int:
    # bool is an int subclass; True is not a level
    if isinstance(n, bool) or not isinstance(n, int) or not MIN_ORDINAL <= n <= MAX_ORDINAL:
        raise InvalidLevel(f"Invalid Bloom's level: {n!r} (expected {MIN_ORDINAL}-{MAX_ORDINAL})")
    return n


def level_by_ordinal(n: int) -> TaxonomyLevel:
    """Return the level for ordinal `n`; raises InvalidLevel outside 1..6."""
    return BLOOM_LEVELS[_check_ordinal(n) - 1]


def next_ordinal(n: int) -> Optional[int]:
    """Return `n + 1`, or None when `n` is already the top level."""
    _check_ordinal(n)
    if n < MAX_ORDINAL:
        return n + 1
    return None


def next_level(n: int) -> Optional[TaxonomyLevel]:
    following = next_ordinal(n)
    if following is None:
        return None
    return level_by_ordinal(following)
