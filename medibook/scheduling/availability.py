"""Recurring weekly availability of a doctor.

Rules are stored as a JSON list on the doctor row using the keys ``day``,
``startTime`` and ``endTime``. The list is always written back as a whole.
"""

import re
from dataclasses import asdict, dataclass
from typing import Any, Iterable, Mapping

from medibook.services.errors import InvalidAvailabilityRule

WEEKDAY_NAMES = ('Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday')

DEFAULT_RULE_DAY = 'Monday'
DEFAULT_RULE_START = '09:00'
DEFAULT_RULE_END = '17:00'

_TIME_PATTERN = re.compile(r'^([01]\d|2[0-3]):([0-5]\d)$')
_FIELD_ALIASES = {
    'day': 'day',
    'startTime': 'startTime',
    'start_time': 'startTime',
    'endTime': 'endTime',
    'end_time': 'endTime',
}


@dataclass
class AvailabilityRule:
    day: str
    startTime: str
    endTime: str

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> 'AvailabilityRule':
        def _text(key: str) -> str:
            value = raw.get(key)
            return value if isinstance(value, str) else ''

        return cls(day=_text('day'), startTime=_text('startTime'), endTime=_text('endTime'))

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


def rules_from_storage(raw_rules: Any) -> list[AvailabilityRule]:
    if not isinstance(raw_rules, list):
        return []
    return [AvailabilityRule.from_mapping(raw) for raw in raw_rules if isinstance(raw, Mapping)]


class AvailabilitySchedule:
    """Editable, ordered list of a doctor's availability rules.

    Edits are positional and unchecked; overlapping rules are allowed.
    """

    def __init__(self, rules: Iterable[AvailabilityRule] | None = None):
        self.rules: list[AvailabilityRule] = list(rules or [])

    @classmethod
    def from_storage(cls, raw_rules: Any) -> 'AvailabilitySchedule':
        return cls(rules_from_storage(raw_rules))

    def add_rule(self) -> AvailabilityRule:
        rule = AvailabilityRule(day=DEFAULT_RULE_DAY, startTime=DEFAULT_RULE_START, endTime=DEFAULT_RULE_END)
        self.rules.append(rule)
        return rule

    def remove_rule(self, index: int) -> AvailabilityRule:
        if not 0 <= index < len(self.rules):
            raise IndexError(f'No availability rule at position {index}.')
        return self.rules.pop(index)

    def update_rule(self, index: int, field: str, value: str) -> AvailabilityRule:
        if not 0 <= index < len(self.rules):
            raise IndexError(f'No availability rule at position {index}.')

        attribute = _FIELD_ALIASES.get(field)
        if attribute is None:
            raise InvalidAvailabilityRule(f'Unknown availability field "{field}".')

        setattr(self.rules[index], attribute, value)
        return self.rules[index]

    def to_storage(self) -> list[dict[str, str]]:
        return [rule.to_dict() for rule in self.rules]

    def __len__(self) -> int:
        return len(self.rules)


def validate_rules(rules: Iterable[AvailabilityRule]) -> None:
    """Reject rules that cannot produce slots before they are saved."""
    for position, rule in enumerate(rules):
        if rule.day not in WEEKDAY_NAMES:
            raise InvalidAvailabilityRule(f'Rule {position + 1}: unknown day "{rule.day}".')

        start_match = _TIME_PATTERN.match(rule.startTime)
        end_match = _TIME_PATTERN.match(rule.endTime)
        if not start_match or not end_match:
            raise InvalidAvailabilityRule(f'Rule {position + 1}: times must use the HH:MM format.')

        if rule.startTime >= rule.endTime:
            raise InvalidAvailabilityRule(f'Rule {position + 1}: start time must be before end time.')

        # Slots are whole hours from the start hour up to, not including, the end hour.
        if int(start_match.group(1)) >= int(end_match.group(1)):
            raise InvalidAvailabilityRule(f'Rule {position + 1}: times must span at least one full hour.')
