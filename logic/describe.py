"""
Plain-text descriptions of show-logic rules for the authoring UI.

Questions are looked up in the survey's question list
([{field, title, options: [{hash, text}]}]) to turn field ids and option
hashes into readable titles.
"""

from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from django.utils.html import strip_tags

from logic.conditions import Condition, Operator, ScoreRange
from logic.conf import logic_settings
from logic.engine import Rule

OPERATOR_PHRASES = {
    Operator.EQUAL: 'selected all of',
    Operator.INCLUDE: 'selected any of',
    Operator.NOT_INCLUDE: 'did not select all of',
    Operator.NOT_EQUAL: 'selected none of',
}


def _index(questions: Optional[Sequence[Any]]) -> Dict[str, Mapping]:
    return {
        question['field']: question
        for question in questions or []
        if isinstance(question, Mapping) and isinstance(question.get('field'), str)
    }


def _clean(text: Any) -> str:
    return strip_tags(str(text or '')).strip()


def question_title(field: str, questions: Dict[str, Mapping]) -> str:
    question = (questions.get(field) if isinstance(field, str) else None) or {}
    return _clean(question.get('title')) or str(field)


def option_titles(field: str, values: Sequence[Any], questions: Dict[str, Mapping]) -> List[str]:
    question = questions.get(field) if isinstance(field, str) else None
    options = (question or {}).get('options') or []
    texts = {
        option['hash']: _clean(option.get('text'))
        for option in options
        if isinstance(option, Mapping) and isinstance(option.get('hash'), str)
    }
    return [(texts.get(value) if isinstance(value, str) else None) or str(value) for value in values]


def score_range_text(value: ScoreRange) -> str:
    if value.min is not None and value.max is not None:
        return f"{value.min} ~ {value.max}"
    if value.min is not None:
        return f">= {value.min}"
    if value.max is not None:
        return f"<= {value.max}"
    return 'not set'


def describe_condition(condition: Union[Condition, Mapping], questions: Optional[Sequence[Any]] = None) -> str:
    """
    Describe one condition.

    Example:
        "[Age group] selected any of [18-25, 26-35]"
    """
    if isinstance(condition, Mapping):
        condition = Condition.from_dict(condition)
    index = _index(questions)
    raw = condition.value.to_json()
    values = list(raw) if isinstance(raw, (list, tuple)) else [raw]

    if condition.field == logic_settings.CONTROL_WORDS_FIELD:
        words = ', '.join(str(word) for word in values if word)
        return f"[Control words] selected [{words}]"

    if condition.operator is Operator.SCORE_BETWEEN and isinstance(condition.value, ScoreRange):
        fields = condition.value.fields if isinstance(condition.value.fields, (list, tuple)) else []
        labels = ', '.join(question_title(field, index) for field in fields)
        return f"Total score of [{labels}] is in [{score_range_text(condition.value)}]"

    phrase = OPERATOR_PHRASES.get(condition.operator, condition.raw_operator)
    options = ', '.join(option_titles(condition.field, values, index))
    return f"[{question_title(condition.field, index)}] {phrase} [{options}]"


def describe_rule(rule: Union[Rule, Mapping], questions: Optional[Sequence[Any]] = None) -> str:
    """
    Describe a whole rule, conditions connected by their joins.

    Grouped conditions are wrapped in parentheses.
    """
    if isinstance(rule, Mapping):
        rule = Rule.from_dict(rule)
    if not rule.conditions:
        return ''

    texts = [describe_condition(condition, questions) for condition in rule.conditions]
    segments = rule.segments() if rule.has_groups else [(0, len(texts) - 1)]

    parts = []
    for position, (start, end) in enumerate(segments):
        segment = texts[start]
        for index in range(start + 1, end + 1):
            segment = f"{segment} {rule.join_at(index - 1).upper()} {texts[index]}"
        if len(segments) > 1 and end > start:
            segment = f"({segment})"
        if position:
            segment = f"{rule.join_at(segments[position - 1][1]).upper()} {segment}"
        parts.append(segment)
    return ' '.join(parts)
