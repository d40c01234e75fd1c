"""
Question visibility for survey rendering.

Applies a survey's show-logic to its question list the way the respondent
renderer does: every question is checked against the rule set with the
current answers, visible numbered questions get a running index, and pages
can be checked for having anything left to show.
"""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from logic.conf import logic_settings
from logic.engine import RuleSet
from logic.facts import FactSet

logger = logging.getLogger(__name__)

DESCRIPTION_TYPE = 'description'


def build_facts(answers: Optional[Mapping], questions: Optional[Sequence[Any]]) -> Dict[str, Any]:
    """Answers plus the question list under the schema key; answers win on collision."""
    facts = {logic_settings.SCHEMA_FACT_KEY: list(questions or [])}
    facts.update(answers or {})
    return facts


def load_show_logic(code: Optional[Mapping]) -> RuleSet:
    """
    Build the show-logic rule set of a survey code document.

    Expects the document layout {'logicConf': {'showLogicConf': [...]}};
    a missing section yields an empty rule set.
    """
    logic_conf = (code or {}).get('logicConf') or {}
    if not isinstance(logic_conf, Mapping):
        logger.warning(f"Ignoring logicConf of type {type(logic_conf).__name__}")
        logic_conf = {}
    return RuleSet().from_json(logic_conf.get('showLogicConf') or [])


def is_question_visible(
    rule_set: RuleSet,
    field: str,
    facts: FactSet,
    hidden_fields: Iterable[str] = (),
) -> bool:
    if not isinstance(field, str):
        return True
    if field in hidden_fields:
        return False
    return rule_set.match(field, logic_settings.DEFAULT_SCOPE, facts)


def visible_questions(
    rule_set: RuleSet,
    questions: Sequence[Mapping],
    answers: Optional[Mapping],
    hidden_fields: Iterable[str] = (),
) -> List[Dict[str, Any]]:
    """
    Annotate every question with its visibility.

    Args:
        rule_set: Show-logic of the survey
        questions: Ordered question list ([{field, type, showIndex, ...}])
        answers: Current answers keyed by field
        hidden_fields: Fields hidden by other means (e.g. jump logic)

    Returns:
        Copies of the questions with 'visible' set, and 'indexNumber' set on
        visible questions that show an index (description items are not
        numbered)
    """
    hidden = set(hidden_fields)
    facts = FactSet(build_facts(answers, questions))

    result = []
    index = 1
    for question in questions:
        item = dict(question)
        item['visible'] = is_question_visible(rule_set, item.get('field'), facts, hidden)
        if item['visible'] and item.get('showIndex') and item.get('type') != DESCRIPTION_TYPE:
            item['indexNumber'] = index
            index += 1
        result.append(item)
    return result


def page_has_visible_questions(
    rule_set: RuleSet,
    questions: Sequence[Mapping],
    page_conf: Sequence[int],
    page: int,
    answers: Optional[Mapping],
    hidden_fields: Iterable[str] = (),
) -> bool:
    """
    Whether a page (1-based) has at least one visible question.

    page_conf holds the number of questions on each page.
    """
    if page < 1 or page > len(page_conf):
        return False
    start = sum(count or 0 for count in page_conf[:page - 1])
    end = start + (page_conf[page - 1] or 0)
    page_questions = list(questions[start:end])
    if not page_questions:
        return False

    hidden = set(hidden_fields)
    facts = FactSet(build_facts(answers, questions))
    return any(
        is_question_visible(rule_set, question.get('field'), facts, hidden)
        for question in page_questions
    )
