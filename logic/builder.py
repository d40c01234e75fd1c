"""
Authoring-time builder for show-logic rules.

Mirrors the rule-builder UI: rules and conditions carry stable ids so they
can be edited in place, and the whole configuration can be validated and
exported to the JSON stored in the survey's logic configuration.

Example:
    build = RuleBuild()
    rule = RuleNode(target='q3')
    rule.add_condition(ConditionNode('q1', Operator.INCLUDE, ['h1']))
    build.add_rule(rule)
    build.validate_schema()
    conf = build.to_json()
"""

import secrets
from typing import Any, Dict, List, Mapping, Optional, Union

from logic.conditions import JOIN_OPERATORS, Operator, is_number
from logic.conf import logic_settings
from logic.engine import RuleSet
from logic.serializers import validate_rules


RULE_PREFIX = 'r'
CONDITION_PREFIX = 'c'


class LogicValidationError(Exception):
    """Raised when a logic configuration does not pass schema validation"""

    def __init__(self, errors: List[str]):
        self.errors = errors
        super().__init__('; '.join(errors))


def generate_id(prefix: str = RULE_PREFIX) -> str:
    return f"{prefix}-{secrets.token_urlsafe(4)[:5]}"


class ConditionNode:
    """Editable condition"""

    def __init__(
        self,
        field: str = '',
        operator: Union[Operator, str] = Operator.INCLUDE,
        value: Any = None,
    ):
        self.id = generate_id(CONDITION_PREFIX)
        self.field = field
        self.operator = operator.value if isinstance(operator, Operator) else operator
        self.value = value if value is not None else []
        self.group_id: Optional[int] = None
        self.group_comparor: Optional[str] = None

    def set_field(self, field: str) -> None:
        self.field = field

    def set_operator(self, operator: Union[Operator, str]) -> None:
        self.operator = operator.value if isinstance(operator, Operator) else operator

    def set_value(self, value: Any) -> None:
        self.value = value

    def to_json(self) -> Dict[str, Any]:
        data = {
            'field': self.field,
            'operator': self.operator,
            'value': self.value,
        }
        if self.group_id is not None:
            data['groupId'] = self.group_id
        if self.group_comparor is not None:
            data['groupComparor'] = self.group_comparor
        return data


class RuleNode:
    """Editable rule"""

    def __init__(self, target: str = '', scope: Optional[str] = None, id: Optional[str] = None):
        self.id = id or generate_id(RULE_PREFIX)
        self.target = target
        self.scope = scope or logic_settings.DEFAULT_SCOPE
        self.comparor = logic_settings.DEFAULT_COMPARATOR
        self.joins: List[str] = []
        self.conditions: List[ConditionNode] = []

    def set_target(self, value: str) -> None:
        self.target = value

    def add_condition(self, condition: ConditionNode) -> None:
        self.conditions.append(condition)

    def remove_condition(self, condition_id: str) -> None:
        """Remove a condition together with the join that connected it."""
        for index, condition in enumerate(self.conditions):
            if condition.id != condition_id:
                continue
            del self.conditions[index]
            join_index = index - 1 if index > 0 else 0
            if join_index < len(self.joins):
                del self.joins[join_index]
            return

    def find_condition(self, condition_id: str) -> Optional[ConditionNode]:
        for condition in self.conditions:
            if condition.id == condition_id:
                return condition
        return None

    def to_json(self) -> Dict[str, Any]:
        return {
            'target': self.target,
            'scope': self.scope,
            'comparor': self.comparor,
            'joins': list(self.joins),
            'conditions': [condition.to_json() for condition in self.conditions],
        }


class RuleBuild:
    """Editable list of rules backing the rule-builder UI"""

    def __init__(self):
        self.rules: List[RuleNode] = []

    def add_rule(self, rule: RuleNode) -> None:
        self.rules.append(rule)

    def remove_rule(self, rule_id: str) -> None:
        self.rules = [rule for rule in self.rules if rule.id != rule_id]

    def clear(self) -> None:
        self.rules = []

    def find_rule(self, rule_id: str) -> Optional[RuleNode]:
        for rule in self.rules:
            if rule.id == rule_id:
                return rule
        return None

    def to_json(self) -> List[Dict[str, Any]]:
        return [rule.to_json() for rule in self.rules]

    def from_json(self, rule_conf: Any) -> 'RuleBuild':
        """
        Replace all rules with the ones of a logic configuration.

        comparor, joins, groupId and groupComparor are filtered to valid
        values the same way the runtime engine loads them.
        """
        self.rules = []
        if not isinstance(rule_conf, list):
            return self

        for entry in rule_conf:
            if not isinstance(entry, Mapping):
                continue
            rule = RuleNode(entry.get('target'), entry.get('scope'))
            if entry.get('comparor') in JOIN_OPERATORS:
                rule.comparor = entry['comparor']
            if isinstance(entry.get('joins'), list):
                rule.joins = [join for join in entry['joins'] if join in JOIN_OPERATORS]

            conditions = entry.get('conditions')
            for item in conditions if isinstance(conditions, list) else []:
                if not isinstance(item, Mapping):
                    continue
                condition = ConditionNode(item.get('field'), item.get('operator'), item.get('value'))
                group_id = item.get('groupId')
                condition.group_id = group_id if is_number(group_id) else None
                group_comparor = item.get('groupComparor')
                condition.group_comparor = group_comparor if group_comparor in JOIN_OPERATORS else None
                rule.add_condition(condition)

            self.add_rule(rule)
        return self

    def validate_schema(self) -> List[Dict[str, Any]]:
        """
        Validate the current rules.

        Returns:
            The exported configuration when valid

        Raises:
            LogicValidationError: with one message per problem found
        """
        conf = self.to_json()
        errors = validate_rules(conf)
        if errors:
            raise LogicValidationError(errors)
        return conf

    def find_targets_by_scope(self, scope: str) -> List[str]:
        """Targets already driven by a rule (greyed out in the target picker)."""
        return [rule.target for rule in self.rules if rule.scope == scope]

    def find_rules_by_field(self, field: str) -> List[RuleNode]:
        return [
            rule for rule in self.rules
            if any(condition.field == field for condition in rule.conditions)
        ]

    def find_targets_by_field(self, field: str) -> List[str]:
        """Targets depending on field; a question listed here must not be deleted."""
        return [rule.target for rule in self.find_rules_by_field(field)]

    def find_condition_by_target(self, target: str) -> List[List[ConditionNode]]:
        return [rule.conditions for rule in self.rules if rule.target == target]

    def has_logic(self, field: str) -> bool:
        """Whether field is a source or a target of any rule."""
        return bool(self.find_targets_by_field(field)) or bool(self.find_condition_by_target(field))

    def to_rule_set(self) -> RuleSet:
        """Load the current rules into a runtime engine, e.g. for preview."""
        return RuleSet().from_json(self.to_json())
