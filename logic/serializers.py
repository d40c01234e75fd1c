"""
Logic Configuration Serializers

Validation of the show-logic configuration produced by the rule-builder UI.
A configuration is a list of rules:

[
    {
        "target": "q3",
        "scope": "question",
        "comparor": "and",
        "joins": ["or"],
        "conditions": [
            {"field": "q1", "operator": "in", "value": ["h1", "h2"]},
            {"field": "q2", "operator": "score_between",
             "value": {"fields": ["q1", "q2"], "min": 3, "max": 9},
             "groupId": 1, "groupComparor": "and"}
        ]
    }
]
"""

from typing import Any, List

from rest_framework import serializers

from logic.conditions import JOIN_OPERATORS, Operator, is_number


def is_score_range(value: Any) -> bool:
    """{fields: string[], min?: number, max?: number}"""
    if not isinstance(value, dict):
        return False
    fields = value.get('fields')
    if not isinstance(fields, list) or not all(isinstance(item, str) for item in fields):
        return False
    for bound in ('min', 'max'):
        if bound in value and not is_number(value[bound]):
            return False
    return True


def is_string_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(item, str) for item in value)


class StrictCharField(serializers.CharField):
    """CharField that rejects numbers instead of coercing them to strings"""

    def to_internal_value(self, data):
        if not isinstance(data, str):
            self.fail('invalid')
        return super().to_internal_value(data)


class NumberField(serializers.Field):
    """Any JSON number, integral or not; strings and booleans are rejected"""

    default_error_messages = {
        'invalid': 'A valid number is required.',
    }

    def to_internal_value(self, data):
        if not is_number(data):
            self.fail('invalid')
        return data

    def to_representation(self, value):
        return value


class ConditionSerializer(serializers.Serializer):
    """Serializer for a single condition of a rule"""

    field = StrictCharField()
    operator = serializers.ChoiceField(choices=[operator.value for operator in Operator])
    value = serializers.JSONField()
    groupId = NumberField(required=False, allow_null=True)
    groupComparor = serializers.ChoiceField(choices=JOIN_OPERATORS, required=False, allow_null=True)

    def validate(self, data):
        """Check that the value has the shape its operator expects"""
        operator = data['operator']
        value = data.get('value')

        if operator == Operator.SCORE_BETWEEN.value:
            if not is_score_range(value):
                raise serializers.ValidationError({
                    'value': "Operator 'score_between' expects {fields: string[], min?: number, max?: number}"
                })
        elif not is_string_list(value):
            raise serializers.ValidationError({
                'value': f"Operator '{operator}' expects a list of strings"
            })

        return data


class RuleSerializer(serializers.Serializer):
    """Serializer for a show-logic rule"""

    target = StrictCharField()
    scope = StrictCharField()
    comparor = serializers.ChoiceField(choices=JOIN_OPERATORS, required=False, allow_null=True)
    joins = serializers.ListField(
        child=serializers.ChoiceField(choices=JOIN_OPERATORS),
        required=False,
        allow_null=True,
    )
    conditions = ConditionSerializer(many=True)


def flatten_errors(errors: Any, path: str = 'rules') -> List[str]:
    """
    Flatten nested serializer errors into 'path: message' strings.

    Example:
        ['rules[0].conditions[1].value: Operator 'in' expects a list of strings']
    """
    if isinstance(errors, dict):
        messages = []
        for key, value in errors.items():
            if key == 'non_field_errors':
                sub_path = path
            elif isinstance(key, int):
                sub_path = f"{path}[{key}]"
            else:
                sub_path = f"{path}.{key}"
            messages.extend(flatten_errors(value, sub_path))
        return messages

    if isinstance(errors, list):
        messages = []
        for index, item in enumerate(errors):
            if isinstance(item, (dict, list)):
                messages.extend(flatten_errors(item, f"{path}[{index}]"))
            else:
                messages.append(f"{path}: {item}")
        return messages

    return [f"{path}: {errors}"]


def validate_rules(rule_conf: Any) -> List[str]:
    """
    Validate a logic configuration without loading it.

    Args:
        rule_conf: List of rule objects

    Returns:
        List of validation error messages (empty if valid)
    """
    serializer = RuleSerializer(data=rule_conf, many=True)
    if serializer.is_valid():
        return []
    return flatten_errors(serializer.errors)
