"""Category rule table: loading, validation and keyword matching.

The table is data, not code. The packaged default lives in
``ingest/seeds/category_rules.v1.json``; ``SI_CATEGORY_RULES_FILE`` (via
:class:`~statement_import.config.ImportSettings`) can point at a replacement
with the same schema (:class:`~statement_import.models.RuleTableFile`).

Matching
--------
Keywords and the searched text are folded (case- and accent-insensitive, see
:func:`~statement_import.normalizers.fold_text`). Keywords longer than three
characters match as substrings; shorter ones (``oi``, ``bar``, ``99``) must
match a whole token. Rules are evaluated in file order and the first match
wins.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from importlib import resources
from pathlib import Path

from .models import CategoryLabel, Direction, RuleTableFile
from .normalizers import fold_text

_DEFAULT_RULES_RESOURCE = "ingest/seeds/category_rules.v1.json"
_SHORT_KEYWORD_MAX = 3


@dataclass(frozen=True, slots=True)
class CategoryRule:
    domain: str
    direction: Direction
    category: str
    subcategory: str | None
    keywords: tuple[str, ...]
    _token_re: re.Pattern[str] | None
    _substrings: tuple[str, ...]

    @classmethod
    def build(
        cls,
        *,
        domain: str,
        direction: Direction,
        category: str,
        subcategory: str | None,
        keywords: Sequence[str],
    ) -> CategoryRule:
        folded = tuple(k for k in (fold_text(kw) for kw in keywords) if k)
        short = [k for k in folded if len(k) <= _SHORT_KEYWORD_MAX]
        token_re = (
            re.compile(r"(?<!\w)(?:" + "|".join(re.escape(k) for k in short) + r")(?!\w)")
            if short
            else None
        )
        return cls(
            domain=domain,
            direction=direction,
            category=category,
            subcategory=subcategory,
            keywords=folded,
            _token_re=token_re,
            _substrings=tuple(k for k in folded if len(k) > _SHORT_KEYWORD_MAX),
        )

    def matches(self, folded_text: str) -> bool:
        if any(k in folded_text for k in self._substrings):
            return True
        return self._token_re is not None and self._token_re.search(folded_text) is not None


@dataclass(frozen=True, slots=True)
class RuleTable:
    rules: tuple[CategoryRule, ...]
    income_fallback: CategoryLabel
    recurring: CategoryLabel

    def first_match(self, folded_text: str, direction: Direction) -> CategoryRule | None:
        for rule in self.rules:
            if rule.direction is direction and rule.matches(folded_text):
                return rule
        return None


def parse_rule_table(json_text: str) -> RuleTable:
    """Validate a rule-table JSON document and compile its keyword matchers."""

    spec = RuleTableFile.model_validate_json(json_text)
    rules = tuple(
        CategoryRule.build(
            domain=r.domain,
            direction=Direction(r.direction),
            category=r.category,
            subcategory=r.subcategory,
            keywords=r.keywords,
        )
        for r in spec.rules
    )
    return RuleTable(rules=rules, income_fallback=spec.income_fallback, recurring=spec.recurring)


def load_rule_table(path: str | Path | None = None) -> RuleTable:
    """Load the rule table from ``path`` or from the packaged default."""

    if path is not None:
        return parse_rule_table(Path(path).read_text(encoding="utf-8"))
    resource = resources.files("statement_import").joinpath(_DEFAULT_RULES_RESOURCE)
    return parse_rule_table(resource.read_text(encoding="utf-8"))


__all__ = ["CategoryRule", "RuleTable", "load_rule_table", "parse_rule_table"]
