"""
Show-Logic Engine for Dynamic Surveys

Decides, for every question of a survey, whether it is shown to the
current respondent based on the answers given so far.

- Rules are keyed by (target, scope) and hold an ordered list of conditions
- Adjacent conditions are connected by explicit per-pair joins ('and'/'or'),
  folded strictly left to right with no operator precedence
- Conditions sharing a group id are evaluated as a parenthesized segment
- Evaluation is synchronous, deterministic and never raises: configuration
  mistakes hide or show a question, they never break rendering

A RuleSet is built per rendering session from the survey's logic
configuration and must not be shared between respondents: it remembers the
last evaluation of each rule for get_result_by_target.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from logic.conditions import AND, JOIN_OPERATORS, OR, Condition
from logic.conf import logic_settings
from logic.facts import FactSet

logger = logging.getLogger(__name__)

RuleKey = Tuple[str, str]


def combine(acc: bool, join: str, value: bool) -> bool:
    return (acc or value) if join == OR else (acc and value)


@dataclass(frozen=True)
class RuleEvaluation:
    """
    Outcome of evaluating one rule against a fact set.

    matched is the authoritative visibility decision. all_conditions_met
    only reports whether every condition held on its own, regardless of
    joins and groups; it backs the authoring hint and can disagree with
    matched (an 'or' rule is matched as soon as one condition holds).
    """
    target: str
    scope: str
    matched: bool
    condition_results: Tuple[bool, ...] = ()

    @property
    def all_conditions_met(self) -> bool:
        return all(self.condition_results)


class Rule:
    """
    Visibility rule for one target (a question or other scope element).

    joins[i] connects condition i and condition i + 1. A missing join slot
    reads as 'and'. comparor is carried for the authoring UI and exported
    with the rule; it does not take part in folding.
    """

    def __init__(
        self,
        target: str,
        scope: Optional[str] = None,
        comparor: Optional[str] = None,
        joins: Optional[List[str]] = None,
    ):
        self.target = target
        self.scope = scope if scope is not None else logic_settings.DEFAULT_SCOPE
        self.comparor = comparor if comparor in JOIN_OPERATORS else logic_settings.DEFAULT_COMPARATOR
        self.joins: List[str] = [join for join in (joins or []) if join in JOIN_OPERATORS]
        self.conditions: List[Condition] = []

    def __repr__(self) -> str:
        return f"Rule({self.target!r}, {self.scope!r}, conditions={len(self.conditions)})"

    @property
    def key(self) -> RuleKey:
        return (self.target, self.scope)

    def add_condition(self, condition: Condition) -> None:
        """
        Append a condition.

        A condition identical to an existing one (same field, operator and
        value) replaces it in place instead of being appended twice.
        """
        for index, existing in enumerate(self.conditions):
            if existing.key == condition.key:
                self.conditions[index] = condition
                return
        self.conditions.append(condition)

    def uses_field(self, field: str) -> bool:
        return any(condition.field == field for condition in self.conditions)

    @property
    def has_groups(self) -> bool:
        return any(condition.group != 0 for condition in self.conditions)

    def join_at(self, index: int) -> str:
        """Join between condition index and index + 1; 'and' when the slot is missing."""
        if index < len(self.joins) and self.joins[index] == OR:
            return OR
        return AND

    def segments(self) -> List[Tuple[int, int]]:
        """
        Split the conditions into maximal runs sharing a group id.

        Returns (start, end) index pairs, end inclusive. A group id seen
        again after another group starts a new segment.
        """
        if not self.conditions:
            return []

        segments = []
        start = 0
        current = self.conditions[0].group
        for index in range(1, len(self.conditions)):
            group = self.conditions[index].group
            if group != current:
                segments.append((start, index - 1))
                start = index
                current = group
        segments.append((start, len(self.conditions) - 1))
        return segments

    def _fold(self, results: List[bool], start: int, end: int) -> bool:
        acc = results[start]
        for index in range(start + 1, end + 1):
            acc = combine(acc, self.join_at(index - 1), results[index])
        return acc

    def evaluate(self, facts: Union[FactSet, Mapping, None], comparor: Optional[str] = None) -> RuleEvaluation:
        """
        Evaluate the rule and keep every condition's outcome.

        Args:
            facts: Answers of the current respondent
            comparor: Comparor requested by the caller; carried only, joins
                decide the fold

        Returns:
            RuleEvaluation with the visibility decision and per-condition results
        """
        if not self.conditions:
            return RuleEvaluation(self.target, self.scope, True, ())

        facts = FactSet.of(facts)
        # Every condition is evaluated so the per-condition results are complete
        results = [condition.match(facts) for condition in self.conditions]

        if self.has_groups:
            segments = self.segments()
            segment_results = [self._fold(results, start, end) for start, end in segments]
            matched = segment_results[0]
            for position in range(1, len(segments)):
                boundary = segments[position - 1][1]
                matched = combine(matched, self.join_at(boundary), segment_results[position])
        else:
            matched = self._fold(results, 0, len(results) - 1)

        logger.debug(f"Rule {self.target}/{self.scope}: {results} -> {matched}")
        return RuleEvaluation(self.target, self.scope, matched, tuple(results))

    def match(self, facts: Union[FactSet, Mapping, None], comparor: Optional[str] = None) -> bool:
        return self.evaluate(facts, comparor).matched

    def to_dict(self) -> Dict[str, Any]:
        return {
            'target': self.target,
            'scope': self.scope,
            'comparor': self.comparor,
            'joins': list(self.joins),
            'conditions': [condition.to_dict() for condition in self.conditions],
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> 'Rule':
        """
        Build a rule from its JSON form, dropping invalid pieces.

        Invalid comparor values fall back to the default, join members other
        than 'and'/'or' are filtered out, and non-object conditions are
        skipped.
        """
        joins = data.get('joins')
        rule = cls(
            target=data.get('target'),
            scope=data.get('scope'),
            comparor=data.get('comparor'),
            joins=joins if isinstance(joins, list) else None,
        )
        conditions = data.get('conditions')
        if not isinstance(conditions, list):
            if conditions is not None:
                logger.warning(f"Rule {rule.target}/{rule.scope}: 'conditions' is not a list, ignoring")
            conditions = []
        for item in conditions:
            if not isinstance(item, Mapping):
                logger.warning(f"Rule {rule.target}/{rule.scope}: skipping non-object condition {item!r}")
                continue
            rule.add_condition(Condition.from_dict(item))
        return rule


class RuleSet:
    """
    All visibility rules of one survey, keyed by (target, scope).

    Example:
        rule_set = RuleSet().from_json([
            {
                "target": "q3",
                "scope": "question",
                "joins": ["or"],
                "conditions": [
                    {"field": "q1", "operator": "in", "value": ["h1"]},
                    {"field": "q2", "operator": "eq", "value": ["h4"]}
                ]
            }
        ])
        rule_set.match("q3", "question", {"q1": "h1"})   # True
        rule_set.match("q9", "question", {})             # True, no rule
    """

    def __init__(self):
        self.rules: Dict[RuleKey, Rule] = {}
        self._evaluations: Dict[RuleKey, RuleEvaluation] = {}

    def __len__(self) -> int:
        return len(self.rules)

    def __contains__(self, key: RuleKey) -> bool:
        return key in self.rules

    @staticmethod
    def _key(target: str, scope: Optional[str]) -> RuleKey:
        return (target, scope if scope is not None else logic_settings.DEFAULT_SCOPE)

    def clear(self) -> None:
        self.rules = {}
        self._evaluations = {}

    def from_json(self, rule_conf: Any) -> 'RuleSet':
        """
        Rebuild the rule set from a logic configuration.

        Args:
            rule_conf: List of rule objects as produced by the authoring UI

        Returns:
            self, to allow RuleSet().from_json(conf)
        """
        self.clear()
        if not isinstance(rule_conf, list):
            if rule_conf is not None:
                logger.warning(f"Logic configuration must be a list, got {type(rule_conf).__name__}")
            return self

        for entry in rule_conf:
            if not isinstance(entry, Mapping):
                logger.warning(f"Skipping non-object rule entry {entry!r}")
                continue
            target, scope = entry.get('target'), entry.get('scope')
            if not isinstance(target, str) or not isinstance(scope, (str, type(None))):
                logger.warning(f"Skipping rule entry with invalid target/scope {target!r}/{scope!r}")
                continue
            self.add_rule(Rule.from_dict(entry))

        logger.info(f"Loaded {len(self.rules)} logic rules from {len(rule_conf)} entries")
        return self

    def add_rule(self, rule: Rule) -> None:
        """
        Register a rule.

        A rule whose (target, scope) is already registered does not replace
        the existing one: the new rule takes over the existing conditions,
        followed by its own, and becomes the registered instance.
        """
        existing = self.rules.get(rule.key)
        if existing is not None and existing is not rule:
            incoming = rule.conditions
            rule.conditions = []
            for condition in existing.conditions + incoming:
                rule.add_condition(condition)
            logger.info(
                f"Merged {len(incoming)} conditions into existing rule {rule.target}/{rule.scope}"
            )
        self.rules[rule.key] = rule
        self._evaluations.pop(rule.key, None)

    def get_rule(self, target: str, scope: Optional[str] = None) -> Optional[Rule]:
        try:
            return self.rules.get(self._key(target, scope))
        except TypeError:
            return None

    def evaluate(
        self,
        target: str,
        scope: Optional[str],
        facts: Union[FactSet, Mapping, None],
        comparor: Optional[str] = None,
    ) -> Optional[RuleEvaluation]:
        """Evaluate the rule of a target; None when the target has no rule."""
        rule = self.get_rule(target, scope)
        if rule is None:
            return None
        evaluation = rule.evaluate(facts, comparor)
        self._evaluations[rule.key] = evaluation
        return evaluation

    def match(
        self,
        target: str,
        scope: Optional[str],
        facts: Union[FactSet, Mapping, None],
        comparor: Optional[str] = None,
    ) -> bool:
        """
        Decide whether a target is visible.

        Targets without a rule are always visible.
        """
        evaluation = self.evaluate(target, scope, facts, comparor)
        if evaluation is None:
            return True
        return evaluation.matched

    def get_result_by_target(self, target: str, scope: Optional[str] = None) -> bool:
        """
        Whether every condition of the target's rule held at its last evaluation.

        This is a hint for the authoring UI, not the visibility decision;
        use match() for that. True when the target has no rule.
        """
        rule = self.get_rule(target, scope)
        if rule is None:
            return True
        evaluation = self._evaluations.get(rule.key)
        if evaluation is None:
            # Never evaluated: only a rule without conditions reports success
            return not rule.conditions
        return evaluation.all_conditions_met

    def find_rules_by_field(self, field: str) -> List[Rule]:
        """Rules having at least one condition that reads field."""
        return [rule for rule in self.rules.values() if rule.uses_field(field)]

    def find_targets_by_field(self, field: str) -> List[str]:
        return [rule.target for rule in self.find_rules_by_field(field)]

    def get_results_by_field(self, field: str, facts: Union[FactSet, Mapping, None]) -> List[Dict[str, Any]]:
        """
        Re-evaluate every rule depending on field.

        Used when the answer to field changes, to find which targets may
        appear or disappear. The 'or' comparor is passed along; missing join
        slots still read as 'and'.
        """
        facts = FactSet.of(facts)
        return [
            {
                'target': rule.target,
                'result': self.match(rule.target, rule.scope, facts, OR),
            }
            for rule in self.find_rules_by_field(field)
        ]

    def explain(self, target: str, scope: Optional[str], facts: Union[FactSet, Mapping, None]) -> Dict[str, Any]:
        """
        Evaluate a target and return a per-condition breakdown.

        Useful for debugging and for showing authors why a question is
        shown or hidden.

        Returns:
            Dictionary with the visibility result and one entry per condition
        """
        facts = FactSet.of(facts)
        rule = self.get_rule(target, scope)
        if rule is None:
            return {
                'target': target,
                'scope': self._key(target, scope)[1],
                'result': True,
                'has_rule': False,
                'conditions': [],
            }

        evaluation = self.evaluate(target, scope, facts)
        conditions = []
        for index, (condition, result) in enumerate(zip(rule.conditions, evaluation.condition_results)):
            conditions.append({
                'field': condition.field,
                'operator': condition.raw_operator,
                'expected_value': condition.value.to_json(),
                'actual_value': facts.get(condition.field),
                'group_id': condition.group_id,
                'join': rule.join_at(index) if index < len(rule.conditions) - 1 else None,
                'result': result,
            })

        return {
            'target': rule.target,
            'scope': rule.scope,
            'result': evaluation.matched,
            'has_rule': True,
            'conditions': conditions,
        }

    def to_json(self) -> List[Dict[str, Any]]:
        return [rule.to_dict() for rule in self.rules.values()]
