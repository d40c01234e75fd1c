"""
Conditions for the survey show-logic engine.

A condition reads one source question from the fact set and compares it
against an expected value using one of a fixed set of operators:

- eq             every expected option is among the answers
- in             at least one expected option is among the answers
- nin            at least one expected option is missing from the answers
- neq            none of the expected options is among the answers
- score_between  option scores summed over several questions fall in a range

The expected value is modelled as a variant tied to the operator, so a
condition never has to guess the shape of its payload at match time.
Anything that does not fit its operator becomes a MalformedValue and
simply never matches.
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, Union

from logic.facts import FactSet, stringify

logger = logging.getLogger(__name__)


AND = 'and'
OR = 'or'
JOIN_OPERATORS = (AND, OR)


class Operator(str, Enum):
    EQUAL = 'eq'
    INCLUDE = 'in'
    NOT_EQUAL = 'neq'
    NOT_INCLUDE = 'nin'
    SCORE_BETWEEN = 'score_between'

    @classmethod
    def parse(cls, raw: Any) -> Optional['Operator']:
        """Return the matching Operator, or None when raw is not a known operator."""
        if isinstance(raw, cls):
            return raw
        try:
            return cls(raw)
        except (TypeError, ValueError):
            return None


# ============================================================================
# Condition values
# ============================================================================

@dataclass(frozen=True)
class OptionValues:
    """List payload of the simple operators (usually option hashes)."""
    values: Tuple[Any, ...]
    raw: Any

    def to_json(self) -> Any:
        return list(self.raw)


@dataclass(frozen=True)
class SingleValue:
    """Scalar payload of the simple operators."""
    value: Any

    def to_json(self) -> Any:
        return self.value


@dataclass(frozen=True)
class ScoreRange:
    """Payload of score_between: {fields: [...], min?: number, max?: number}."""
    fields: Any
    min: Optional[float]
    max: Optional[float]
    raw: Any

    def to_json(self) -> Any:
        return dict(self.raw)


@dataclass(frozen=True)
class MalformedValue:
    """A payload whose shape does not fit its operator."""
    raw: Any

    def to_json(self) -> Any:
        return self.raw


ConditionValue = Union[OptionValues, SingleValue, ScoreRange, MalformedValue]


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def parse_condition_value(operator: Optional[Operator], raw: Any) -> ConditionValue:
    """
    Build the value variant expected by an operator.

    Args:
        operator: Parsed operator, or None for an unknown operator
        raw: Value as found in the logic configuration

    Returns:
        The value variant; MalformedValue when raw does not fit the operator
    """
    if operator is Operator.SCORE_BETWEEN:
        if not isinstance(raw, Mapping):
            return MalformedValue(raw)
        lower = raw.get('min')
        upper = raw.get('max')
        return ScoreRange(
            fields=raw.get('fields', []),
            min=lower if is_number(lower) else None,
            max=upper if is_number(upper) else None,
            raw=raw,
        )

    if operator is None:
        return MalformedValue(raw)

    if isinstance(raw, (list, tuple)):
        return OptionValues(values=tuple(raw), raw=raw)
    if isinstance(raw, Mapping):
        return MalformedValue(raw)
    return SingleValue(raw)


# ============================================================================
# Operator matchers
# ============================================================================

def match_equal(condition: 'Condition', facts: FactSet) -> bool:
    value = condition.value
    if isinstance(value, OptionValues):
        return all(facts.includes(condition.field, item) for item in value.values)
    return facts.includes(condition.field, value.value)


def match_include(condition: 'Condition', facts: FactSet) -> bool:
    value = condition.value
    if isinstance(value, OptionValues):
        return any(facts.includes(condition.field, item) for item in value.values)
    return facts.includes(condition.field, value.value)


def match_not_include(condition: 'Condition', facts: FactSet) -> bool:
    # List payloads hold when at least one listed value is missing
    value = condition.value
    if isinstance(value, OptionValues):
        return any(not facts.includes(condition.field, item) for item in value.values)
    return not facts.includes(condition.field, value.value)


def match_not_equal(condition: 'Condition', facts: FactSet) -> bool:
    value = condition.value
    if isinstance(value, OptionValues):
        return all(not facts.includes(condition.field, item) for item in value.values)

    fact_value = facts.normalized(condition.field)
    if isinstance(fact_value, list):
        fact_value = ','.join(fact_value)
    return fact_value != stringify(value.value)


def match_score_between(condition: 'Condition', facts: FactSet) -> bool:
    value = condition.value
    fields = value.fields
    if not isinstance(fields, (list, tuple)) or not fields:
        return False

    try:
        total = facts.total_score(fields)
    except Exception as e:
        logger.warning(
            f"Score aggregation failed for condition on '{condition.field}': {str(e)}"
        )
        return False

    matched = True
    if value.min is not None:
        matched = matched and total >= value.min
    if value.max is not None:
        matched = matched and total <= value.max
    return matched


# Whitelisted operators; nothing outside this table is ever evaluated
OPERATOR_MATCHERS: Dict[Operator, Callable[['Condition', FactSet], bool]] = {
    Operator.EQUAL: match_equal,
    Operator.INCLUDE: match_include,
    Operator.NOT_INCLUDE: match_not_include,
    Operator.NOT_EQUAL: match_not_equal,
    Operator.SCORE_BETWEEN: match_score_between,
}


# ============================================================================
# Condition
# ============================================================================

class Condition:
    """
    A single comparison inside a rule.

    Conditions sharing a non-zero group_id are evaluated as one
    parenthesized sub-expression by the owning rule. group_comparor is
    carried for the authoring UI only; rules combine conditions with their
    joins.
    """

    def __init__(
        self,
        field: str,
        operator: Union[Operator, str],
        value: Any,
        group_id: Optional[Union[int, float]] = None,
        group_comparor: Optional[str] = None,
    ):
        self.field = field
        self.operator = Operator.parse(operator)
        self.raw_operator = operator.value if isinstance(operator, Operator) else operator
        self.value = parse_condition_value(self.operator, value)
        self.group_id = group_id
        self.group_comparor = group_comparor

    def __repr__(self) -> str:
        return f"Condition({self.field!r}, {self.raw_operator!r}, {self.value.to_json()!r})"

    @property
    def key(self) -> Tuple[Any, ...]:
        """Identity of the condition inside a rule: field, operator and value."""
        try:
            value_key = json.dumps(self.value.to_json(), sort_keys=True, default=str)
        except (TypeError, ValueError):
            value_key = repr(self.value.to_json())
        return (self.field, self.raw_operator, value_key)

    @property
    def group(self) -> Union[int, float]:
        """Group id used for segmentation; 0 when the condition is ungrouped."""
        return self.group_id if is_number(self.group_id) else 0

    def match(self, facts: Union[FactSet, Mapping, None]) -> bool:
        """
        Evaluate the condition against a fact set.

        Never raises: unknown operators, malformed values and missing
        answers all evaluate to False.
        """
        facts = FactSet.of(facts)

        if not isinstance(self.field, str):
            logger.warning(f"Condition field must be a string, got {self.field!r}")
            return False

        matcher = OPERATOR_MATCHERS.get(self.operator)
        if matcher is None:
            logger.warning(f"Unknown operator '{self.raw_operator}' on field '{self.field}'")
            return False

        if isinstance(self.value, MalformedValue):
            logger.warning(
                f"Value {self.value.raw!r} does not fit operator '{self.raw_operator}' "
                f"on field '{self.field}'"
            )
            return False

        # score_between reads the schema, not the field's own answer
        if self.operator is not Operator.SCORE_BETWEEN and not facts.has_answer(self.field):
            return False

        return bool(matcher(self, facts))

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'field': self.field,
            'operator': self.raw_operator,
            'value': self.value.to_json(),
        }
        if self.group_id is not None:
            data['groupId'] = self.group_id
        if self.group_comparor is not None:
            data['groupComparor'] = self.group_comparor
        return data

    @classmethod
    def from_dict(cls, data: Mapping) -> 'Condition':
        """
        Build a condition from its JSON form.

        groupId is kept only when numeric and groupComparor only when it is
        'and' or 'or'; anything else is dropped.
        """
        group_id = data.get('groupId')
        group_comparor = data.get('groupComparor')
        return cls(
            field=data.get('field'),
            operator=data.get('operator'),
            value=data.get('value'),
            group_id=group_id if is_number(group_id) else None,
            group_comparor=group_comparor if group_comparor in JOIN_OPERATORS else None,
        )
