"""
Fact adapter for the show-logic engine.

A fact set is the in-progress answer store of one respondent, keyed by
question field. Answers come in several shapes depending on the question
type:

- single choice / text:   'h1'
- multiple choice:        ['h1', 'h2']
- matrix / inline form:   {'row1': 'h1', 'row2': 'h3'}
- unanswered:             missing, None or ''

The adapter turns each of them into a canonical comparable form so the
condition operators only ever deal with a string or a list of strings.
"""

import logging
import math
from collections.abc import Mapping
from typing import Any, Dict, Iterable, List, Optional, Union

from logic.conf import logic_settings

logger = logging.getLogger(__name__)

FactValue = Union[str, List[str]]


def stringify(value: Any) -> str:
    """
    Convert an answer item to its string form.

    Uses the JSON spelling for booleans and drops the fractional part of
    integral floats, so 1.0 compares equal to '1'.
    """
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def normalize_fact_value(value: Any) -> FactValue:
    """
    Normalize a raw answer into a string or a list of strings.

    - list / tuple  -> list of stringified items (None becomes '')
    - str           -> itself
    - mapping       -> list of its stringified values
    - None          -> ''
    - anything else -> its string form
    """
    if isinstance(value, (list, tuple)):
        return [stringify(item) for item in value]
    if isinstance(value, str):
        return value
    if isinstance(value, Mapping):
        return [stringify(item) for item in value.values()]
    if value is None:
        return ''
    return stringify(value)


def includes(source: FactValue, expected: Any) -> bool:
    """
    Check whether a normalized fact contains the expected value.

    Lists test membership; plain strings test for a substring.
    """
    target = stringify(expected)
    if isinstance(source, list):
        return target in source
    if isinstance(source, str):
        return target in source
    return False


def _option_score(option: Mapping) -> Optional[float]:
    raw = option.get('score') or 0
    if isinstance(raw, bool):
        raw = int(raw)
    try:
        score = float(raw)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(score):
        return None
    return score


class FactSet:
    """
    Read-only view over one respondent's answers.

    Normalized values and the score map are cached on the instance, so a
    FactSet should be built per evaluation pass and thrown away once the
    answers change.

    Example:
        facts = FactSet({'q1': ['h1', 'h2'], '__schema': questions})
        facts.has_answer('q1')      # True
        facts.normalized('q1')      # ['h1', 'h2']
        facts.total_score(['q1'])   # sum of option scores for h1 and h2
    """

    def __init__(self, facts: Optional[Mapping] = None):
        if facts is not None and not isinstance(facts, Mapping):
            logger.warning(f"Ignoring non-mapping facts of type {type(facts).__name__}")
            facts = None
        self.facts = facts or {}
        self._normalized_cache: Dict[str, FactValue] = {}
        self._score_map: Optional[Dict[str, float]] = None

    @classmethod
    def of(cls, facts: Union['FactSet', Mapping, None]) -> 'FactSet':
        """Wrap a raw mapping, passing existing FactSets through."""
        if isinstance(facts, FactSet):
            return facts
        return cls(facts)

    def get(self, field: str) -> Any:
        """Answer of field; None for fields that cannot be a fact key."""
        try:
            return self.facts.get(field)
        except TypeError:
            return None

    def has_answer(self, field: str) -> bool:
        """An answer is present when it is truthy ('' / [] / {} / None are not)."""
        return bool(self.get(field))

    def normalized(self, field: str) -> FactValue:
        if field not in self._normalized_cache:
            self._normalized_cache[field] = normalize_fact_value(self.facts.get(field))
        return self._normalized_cache[field]

    def includes(self, field: str, expected: Any) -> bool:
        return includes(self.normalized(field), expected)

    # ========================================================================
    # Score aggregation
    # ========================================================================

    @property
    def schema(self) -> List[Any]:
        schema = self.facts.get(logic_settings.SCHEMA_FACT_KEY)
        if isinstance(schema, (list, tuple)):
            return list(schema)
        return []

    def score_map(self) -> Dict[str, float]:
        """
        Score earned on every schema question by the current answers.

        Each option whose hash is among the selected answers adds its
        score; options with a missing or non-numeric score add nothing.
        """
        if self._score_map is not None:
            return self._score_map

        scores: Dict[str, float] = {}
        for question in self.schema:
            if not isinstance(question, Mapping):
                continue
            field = question.get('field')
            options = question.get('options')
            if not field or not isinstance(options, (list, tuple)):
                continue

            answer = self.facts.get(field)
            if isinstance(answer, (list, tuple)):
                selected = list(answer)
            else:
                selected = [answer] if answer else []

            total = 0
            for option in options:
                if not isinstance(option, Mapping):
                    continue
                if option.get('hash') in selected:
                    score = _option_score(option)
                    if score is not None:
                        total += score
            scores[field] = total

        self._score_map = scores
        return scores

    def total_score(self, fields: Iterable[str]) -> float:
        """Sum of scores across fields; fields missing from the schema add 0."""
        scores = self.score_map()
        return sum(scores.get(field, 0) for field in fields)
