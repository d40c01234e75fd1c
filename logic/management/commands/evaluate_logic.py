"""
Management command to validate a survey's show-logic and preview it.

Usage:
    python manage.py evaluate_logic survey.json
    python manage.py evaluate_logic survey.json --answers answers.json
    python manage.py evaluate_logic survey.json --validate-only

The survey file is a survey code document:
    {"dataConf": {"dataList": [...]}, "logicConf": {"showLogicConf": [...]}}
"""

import json

from django.core.management.base import BaseCommand, CommandError
from django.utils.html import strip_tags

from logic.describe import describe_rule
from logic.serializers import validate_rules
from logic.visibility import load_show_logic, visible_questions


class Command(BaseCommand):
    help = "Validate a survey's show-logic and print which questions are shown"

    def add_arguments(self, parser):
        parser.add_argument(
            'survey',
            help='Path to the survey code JSON document'
        )
        parser.add_argument(
            '--answers',
            help='Path to a JSON object of answers keyed by field'
        )
        parser.add_argument(
            '--validate-only',
            action='store_true',
            help='Only validate the logic configuration'
        )

    def load_json(self, path):
        try:
            with open(path, encoding='utf-8') as handle:
                return json.load(handle)
        except OSError as e:
            raise CommandError(f"Cannot read {path}: {e}")
        except json.JSONDecodeError as e:
            raise CommandError(f"Invalid JSON in {path}: {e}")

    def handle(self, *args, **options):
        code = self.load_json(options['survey'])
        if not isinstance(code, dict):
            raise CommandError('Survey document must be a JSON object')

        logic_conf = code.get('logicConf') or {}
        if not isinstance(logic_conf, dict):
            raise CommandError("'logicConf' must be a JSON object")
        show_logic_conf = logic_conf.get('showLogicConf') or []

        errors = validate_rules(show_logic_conf)
        if errors:
            for error in errors:
                self.stdout.write(self.style.ERROR(f'✗ {error}'))
            if options['validate_only']:
                raise CommandError(f'Logic configuration is invalid ({len(errors)} errors)')
            self.stdout.write(self.style.WARNING('Evaluating anyway, invalid conditions never match'))
        else:
            self.stdout.write(self.style.SUCCESS(f'✓ {len(show_logic_conf)} logic rules are valid'))

        if options['validate_only']:
            return

        answers = {}
        if options['answers']:
            answers = self.load_json(options['answers'])
            if not isinstance(answers, dict):
                raise CommandError('Answers must be a JSON object')

        data_conf = code.get('dataConf')
        if not isinstance(data_conf, dict):
            data_conf = {}
        questions = [
            question for question in data_conf.get('dataList') or []
            if isinstance(question, dict)
        ]
        rule_set = load_show_logic(code)

        for question in visible_questions(rule_set, questions, answers):
            field = question.get('field')
            title = strip_tags(str(question.get('title') or '')).strip()
            line = f"{field}  {title}"
            if question['visible']:
                self.stdout.write(self.style.SUCCESS(f'shown   {line}'))
            else:
                self.stdout.write(self.style.WARNING(f'hidden  {line}'))

            rule = rule_set.get_rule(field)
            if rule is not None and rule.conditions:
                self.stdout.write(f'        when {describe_rule(rule, questions)}')
