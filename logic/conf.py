"""
Settings for the logic app.

Values are read from the SURVEY_LOGIC dict in Django settings, e.g.:

    SURVEY_LOGIC = {
        'SCHEMA_FACT_KEY': '__schema',
        'DEFAULT_SCOPE': 'question',
    }

The engine is also usable outside a configured Django project, in which
case the defaults below apply.
"""

from typing import Any, Dict

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured


DEFAULTS = {
    'SCHEMA_FACT_KEY': '__schema',
    'DEFAULT_SCOPE': 'question',
    'DEFAULT_COMPARATOR': 'and',
    'CONTROL_WORDS_FIELD': '__controlWords',
}


class LogicSettings:
    """Lazy accessor for SURVEY_LOGIC settings with fallback defaults."""

    def __init__(self, defaults: Dict[str, Any] = None):
        self.defaults = defaults or DEFAULTS

    @property
    def user_settings(self) -> Dict[str, Any]:
        try:
            return getattr(settings, 'SURVEY_LOGIC', {}) or {}
        except ImproperlyConfigured:
            return {}

    def __getattr__(self, attr: str) -> Any:
        if attr not in self.defaults:
            raise AttributeError(f"Invalid logic setting: '{attr}'")
        return self.user_settings.get(attr, self.defaults[attr])


logic_settings = LogicSettings(DEFAULTS)
