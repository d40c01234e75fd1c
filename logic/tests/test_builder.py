"""
Unit Tests for the authoring-time builder and schema validation
"""

from types import MappingProxyType

import pytest

from logic.builder import (
    ConditionNode,
    LogicValidationError,
    RuleBuild,
    RuleNode,
    generate_id,
)
from logic.conditions import Operator
from logic.serializers import flatten_errors, validate_rules


CONFIG = [
    {
        'target': 'q3',
        'scope': 'question',
        'comparor': 'and',
        'joins': ['or', 'and'],
        'conditions': [
            {'field': 'q1', 'operator': 'in', 'value': ['h1'], 'groupId': 1, 'groupComparor': 'or'},
            {'field': 'q2', 'operator': 'eq', 'value': ['h3', 'h4'], 'groupId': 1},
            {'field': 'q2', 'operator': 'score_between', 'value': {'fields': ['q1', 'q2'], 'min': 3}},
        ],
    },
    {
        'target': 'q4',
        'scope': 'question',
        'comparor': 'or',
        'joins': [],
        'conditions': [
            {'field': 'q1', 'operator': 'nin', 'value': ['h2']},
        ],
    },
]


def valid_rule(**overrides):
    data = {
        'target': 'q3',
        'scope': 'question',
        'conditions': [{'field': 'q1', 'operator': 'in', 'value': ['h1']}],
    }
    data.update(overrides)
    return data


class TestRuleBuild:
    """Test cases for editing rules."""

    def test_generate_id(self):
        """Test ids carry their prefix and a short random suffix."""
        rule_id = generate_id()
        condition_id = ConditionNode().id

        assert rule_id.startswith('r-') and len(rule_id) == 7
        assert condition_id.startswith('c-')
        assert generate_id() != generate_id()

    def test_defaults(self):
        """Test new nodes start with the default scope, comparor and operator."""
        rule = RuleNode()
        condition = ConditionNode()

        assert rule.scope == 'question'
        assert rule.comparor == 'and'
        assert condition.operator == 'in'
        assert condition.value == []

    def test_add_find_remove_rule(self):
        """Test rule CRUD by id."""
        build = RuleBuild()
        first, second = RuleNode('q3'), RuleNode('q4')
        build.add_rule(first)
        build.add_rule(second)

        assert build.find_rule(second.id) is second
        build.remove_rule(first.id)
        assert build.rules == [second]
        assert build.find_rule(first.id) is None

        build.clear()
        assert build.rules == []

    def test_condition_editing(self):
        """Test setters and lookup of conditions."""
        rule = RuleNode('q3')
        condition = ConditionNode()
        condition.set_field('q1')
        condition.set_operator(Operator.NOT_EQUAL)
        condition.set_value(['h2'])
        rule.add_condition(condition)

        assert rule.find_condition(condition.id) is condition
        assert condition.to_json() == {'field': 'q1', 'operator': 'neq', 'value': ['h2']}

    def test_remove_condition_drops_its_join(self):
        """Test joins stay aligned with the remaining conditions."""
        rule = RuleNode('q3')
        conditions = [ConditionNode(f'q{i}', 'in', ['x']) for i in range(3)]
        for condition in conditions:
            rule.add_condition(condition)
        rule.joins = ['or', 'and']

        rule.remove_condition(conditions[1].id)
        assert [c.field for c in rule.conditions] == ['q0', 'q2']
        assert rule.joins == ['and']

        rule.remove_condition(conditions[0].id)
        assert rule.joins == []

        rule.remove_condition('c-missing')
        assert [c.field for c in rule.conditions] == ['q2']

    def test_json_round_trip(self):
        """Test from_json followed by to_json gives the configuration back."""
        build = RuleBuild().from_json(CONFIG)

        assert build.to_json() == CONFIG

    def test_from_json_filters_invalid_values(self):
        """Test invalid comparor, joins and group data are dropped."""
        build = RuleBuild().from_json([{
            'target': 'q3',
            'comparor': 'nand',
            'joins': ['or', 'maybe'],
            'conditions': [{'field': 'q1', 'operator': 'in', 'value': ['h1'],
                            'groupId': 'g', 'groupComparor': 'xor'}],
        }])

        rule = build.rules[0]
        assert rule.scope == 'question'
        assert rule.comparor == 'and'
        assert rule.joins == ['or']
        assert rule.conditions[0].to_json() == {'field': 'q1', 'operator': 'in', 'value': ['h1']}

    def test_from_json_accepts_any_mapping(self):
        """Test read-only mappings load like dicts."""
        entry = MappingProxyType(dict(CONFIG[1], conditions=[MappingProxyType(CONFIG[1]['conditions'][0])]))

        build = RuleBuild().from_json([entry])

        assert build.to_json() == [CONFIG[1]]

    def test_lookups(self):
        """Test lookups used by the authoring UI."""
        build = RuleBuild().from_json(CONFIG)

        assert build.find_targets_by_scope('question') == ['q3', 'q4']
        assert build.find_targets_by_field('q1') == ['q3', 'q4']
        assert build.find_targets_by_field('q2') == ['q3']
        assert [r.target for r in build.find_rules_by_field('q9')] == []
        assert len(build.find_condition_by_target('q3')[0]) == 3

    def test_has_logic(self):
        """Test a question is involved in logic as a source or as a target."""
        build = RuleBuild().from_json(CONFIG)

        assert build.has_logic('q1') is True   # source
        assert build.has_logic('q4') is True   # target
        assert build.has_logic('q9') is False

    def test_to_rule_set(self):
        """Test the built rules load into the runtime engine."""
        rule_set = RuleBuild().from_json(CONFIG).to_rule_set()

        assert rule_set.match('q4', 'question', {'q1': 'h1'}) is True
        assert rule_set.match('q4', 'question', {'q1': 'h2'}) is False


class TestSchemaValidation:
    """Test cases for validating logic configurations."""

    def test_valid_configuration(self):
        """Test a well-formed configuration passes."""
        build = RuleBuild().from_json(CONFIG)

        assert build.validate_schema() == CONFIG
        assert validate_rules(CONFIG) == []
        assert validate_rules([]) == []

    def test_optional_fields(self):
        """Test comparor, joins and group data may be omitted or null."""
        rule = valid_rule(comparor=None, joins=None)
        rule['conditions'][0]['groupId'] = None

        assert validate_rules([rule]) == []

    def test_simple_operator_requires_string_list(self):
        """Test simple operators reject non-list values."""
        for value in ('h1', {'fields': ['q1']}, [1, 2], None):
            rule = valid_rule(conditions=[{'field': 'q1', 'operator': 'eq', 'value': value}])
            errors = validate_rules([rule])
            assert errors, value
            assert errors[0].startswith('rules[0].conditions[0].value')

    def test_score_between_shape(self):
        """Test score_between requires {fields: string[], min?: number, max?: number}."""
        good = {'fields': ['q1', 'q2'], 'min': 1, 'max': 2.5}
        assert validate_rules([valid_rule(conditions=[
            {'field': 'q1', 'operator': 'score_between', 'value': good},
        ])]) == []

        for value in (['q1'], {'fields': 'q1'}, {'fields': [1]}, {'fields': ['q1'], 'min': '3'},
                      {'fields': ['q1'], 'max': None}, {'min': 1}):
            rule = valid_rule(conditions=[{'field': 'q1', 'operator': 'score_between', 'value': value}])
            assert validate_rules([rule]), value

    def test_fractional_group_id(self):
        """Test any number is a valid group id, as the engine accepts."""
        rule = valid_rule()
        rule['conditions'][0]['groupId'] = 1.5
        assert validate_rules([rule]) == []

        for group_id in ('1', True, [1]):
            rule['conditions'][0]['groupId'] = group_id
            errors = validate_rules([rule])
            assert errors[0].startswith('rules[0].conditions[0].groupId'), group_id

    def test_identifiers_must_be_strings(self):
        """Test numeric targets, scopes and fields are rejected, not coerced."""
        assert validate_rules([valid_rule(target=5)])[0].startswith('rules[0].target')
        assert validate_rules([valid_rule(scope=7)])[0].startswith('rules[0].scope')
        errors = validate_rules([valid_rule(conditions=[{'field': 3, 'operator': 'in', 'value': ['h1']}])])
        assert errors[0].startswith('rules[0].conditions[0].field')

    def test_valid_configuration_loads_completely(self):
        """Test every rule accepted by validation is loaded by the engine."""
        conf = [valid_rule(target='q3'), valid_rule(target='q4', scope='option')]
        conf[0]['conditions'][0]['groupId'] = 2.5

        assert validate_rules(conf) == []
        assert len(RuleBuild().from_json(conf).to_rule_set()) == 2

    def test_structural_errors(self):
        """Test missing target, bad joins and unknown operators are reported."""
        rule = valid_rule(joins=['or', 'xor'], conditions=[
            {'field': 'q1', 'operator': 'between', 'value': ['h1']},
        ])
        del rule['target']

        errors = validate_rules([rule])

        assert any(error.startswith('rules[0].target') for error in errors)
        assert any(error.startswith('rules[0].joins[1]') for error in errors)
        assert any(error.startswith('rules[0].conditions[0].operator') for error in errors)

    def test_conditions_must_be_a_list(self):
        """Test a rule needs a list of conditions."""
        assert validate_rules([valid_rule(conditions={'field': 'q1'})])
        rule = valid_rule()
        del rule['conditions']
        assert validate_rules([rule])

    def test_configuration_must_be_a_list(self):
        """Test a single rule object is not a configuration."""
        errors = validate_rules(valid_rule())

        assert errors
        assert errors[0].startswith('rules: ')

    def test_validate_schema_raises(self):
        """Test validate_schema raises with every error message."""
        build = RuleBuild()
        rule = RuleNode('q3')
        rule.add_condition(ConditionNode('q1', Operator.SCORE_BETWEEN, ['q1']))
        build.add_rule(rule)

        with pytest.raises(LogicValidationError) as excinfo:
            build.validate_schema()

        assert len(excinfo.value.errors) == 1
        assert 'score_between' in str(excinfo.value)

    def test_flatten_errors(self):
        """Test nested errors become dotted paths."""
        errors = [{}, {'conditions': [{}, {'value': ['bad']}], 'non_field_errors': ['oops']}]

        assert flatten_errors(errors) == [
            'rules[1].conditions[1].value: bad',
            'rules[1]: oops',
        ]
