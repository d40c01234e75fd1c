"""
Unit Tests for rule descriptions
"""

from logic.describe import describe_condition, describe_rule
from logic.engine import Rule


QUESTIONS = [
    {'field': 'q1', 'title': '<p>Do you <b>smoke</b>?</p>',
     'options': [{'hash': 'h1', 'text': 'Yes'}, {'hash': 'h2', 'text': '<i>No</i>'}]},
    {'field': 'q2', 'title': 'Favourite colour',
     'options': [{'hash': 'h3', 'text': 'Red'}, {'hash': 'h4', 'text': 'Blue'}]},
]


class TestDescribeCondition:
    """Test cases for single condition texts."""

    def test_option_condition(self):
        """Test titles and option texts are looked up and stripped of HTML."""
        text = describe_condition({'field': 'q1', 'operator': 'in', 'value': ['h1', 'h2']}, QUESTIONS)

        assert text == '[Do you smoke?] selected any of [Yes, No]'

    def test_operator_phrases(self):
        """Test each simple operator has its own phrase."""
        phrases = {
            'eq': 'selected all of',
            'nin': 'did not select all of',
            'neq': 'selected none of',
        }
        for operator, phrase in phrases.items():
            text = describe_condition({'field': 'q2', 'operator': operator, 'value': ['h3']}, QUESTIONS)
            assert text == f'[Favourite colour] {phrase} [Red]'

    def test_unknown_question_and_option(self):
        """Test ids are shown when nothing can be looked up."""
        text = describe_condition({'field': 'q9', 'operator': 'in', 'value': ['h1', 'zz']}, QUESTIONS)

        assert text == '[q9] selected any of [h1, zz]'

    def test_score_range(self):
        """Test score conditions list their fields and bounds."""
        both = {'field': 'q1', 'operator': 'score_between',
                'value': {'fields': ['q1', 'q2'], 'min': 3, 'max': 9}}
        lower = {'field': 'q1', 'operator': 'score_between',
                 'value': {'fields': ['q1'], 'min': 1.5}}
        unset = {'field': 'q1', 'operator': 'score_between', 'value': {'fields': ['q2']}}

        assert describe_condition(both, QUESTIONS) == 'Total score of [Do you smoke?, Favourite colour] is in [3 ~ 9]'
        assert describe_condition(lower, QUESTIONS) == 'Total score of [Do you smoke?] is in [>= 1.5]'
        assert describe_condition(unset, QUESTIONS) == 'Total score of [Favourite colour] is in [not set]'

    def test_control_words(self):
        """Test the control words pseudo-field."""
        text = describe_condition({'field': '__controlWords', 'operator': 'in', 'value': ['vip', 'beta']})

        assert text == '[Control words] selected [vip, beta]'


class TestDescribeRule:
    """Test cases for whole rule texts."""

    def test_flat_rule(self):
        """Test conditions are connected by their joins."""
        rule = {
            'target': 'q3',
            'joins': ['or'],
            'conditions': [
                {'field': 'q1', 'operator': 'in', 'value': ['h1']},
                {'field': 'q2', 'operator': 'eq', 'value': ['h4']},
            ],
        }

        assert describe_rule(rule, QUESTIONS) == (
            '[Do you smoke?] selected any of [Yes] OR [Favourite colour] selected all of [Blue]'
        )

    def test_grouped_rule(self):
        """Test grouped conditions are wrapped in parentheses."""
        rule = Rule.from_dict({
            'target': 'q3',
            'joins': ['and', 'or'],
            'conditions': [
                {'field': 'q1', 'operator': 'in', 'value': ['h1']},
                {'field': 'q2', 'operator': 'nin', 'value': ['h3'], 'groupId': 1},
                {'field': 'q2', 'operator': 'eq', 'value': ['h4'], 'groupId': 1},
            ],
        })

        assert describe_rule(rule, QUESTIONS) == (
            '[Do you smoke?] selected any of [Yes] AND '
            '([Favourite colour] did not select all of [Red] OR [Favourite colour] selected all of [Blue])'
        )

    def test_missing_join_reads_as_and(self):
        """Test missing joins are described as AND even with an 'or' comparor."""
        rule = {
            'target': 'q3',
            'comparor': 'or',
            'conditions': [
                {'field': 'q1', 'operator': 'in', 'value': ['h1']},
                {'field': 'q1', 'operator': 'in', 'value': ['h2']},
            ],
        }

        assert describe_rule(rule, QUESTIONS) == (
            '[Do you smoke?] selected any of [Yes] AND [Do you smoke?] selected any of [No]'
        )

    def test_rule_without_conditions(self):
        """Test an empty rule has no description."""
        assert describe_rule({'target': 'q3', 'conditions': []}) == ''
