"""
Rule Book - Client-side cache of the service's cleaning rules
"""

import logging
from typing import Dict, List, Optional

from mailcleaner.errors import ValidationError
from mailcleaner.models import RULE_ACTIONS, RULE_TYPES, Rule
from mailcleaner.remote import RemoteClient


logger = logging.getLogger(__name__)


class RuleBook:
    """Read/write cache for display and editing; the service stays the owner"""

    def __init__(self, client: RemoteClient):
        self.client = client
        self.rules: List[Rule] = []

    def get(self, rule_id: str) -> Optional[Rule]:
        return next((rule for rule in self.rules if rule.id == rule_id), None)

    async def load(self) -> List[Rule]:
        data = await self.client.fetch_rules()
        self.rules = [Rule.from_dict(raw) for raw in data.get('rules') or []]
        logger.debug(f"Loaded {len(self.rules)} rules")
        return self.rules

    async def create(self, rule: Rule) -> Rule:
        self.validate(rule)
        data = await self.client.create_rule(rule.to_payload())
        created = Rule.from_dict(data['rule']) if isinstance(data.get('rule'), dict) else rule
        self.rules.append(created)
        logger.info(f"Created {created.type} rule '{created.value}' -> {created.action}")
        return created

    async def update(self, rule_id: str, rule: Rule) -> Rule:
        self.validate(rule)
        data = await self.client.update_rule(rule_id, rule.to_payload())
        updated = Rule.from_dict(data['rule']) if isinstance(data.get('rule'), dict) else rule
        updated.id = updated.id or rule_id
        self.rules = [updated if existing.id == rule_id else existing for existing in self.rules]
        return updated

    async def delete(self, rule_id: str) -> None:
        await self.client.delete_rule(rule_id)
        self.rules = [rule for rule in self.rules if rule.id != rule_id]
        logger.info(f"Deleted rule {rule_id}")

    @staticmethod
    def validate(rule: Rule) -> None:
        """Reject malformed rules before they reach the service"""
        errors: Dict[str, str] = {}
        if rule.type not in RULE_TYPES:
            errors['type'] = f"must be one of {', '.join(RULE_TYPES)}"
        if not rule.value or not rule.value.strip():
            errors['value'] = 'must not be empty'
        if rule.action not in RULE_ACTIONS:
            errors['action'] = f"must be one of {', '.join(RULE_ACTIONS)}"
        if not isinstance(rule.age_days, int) or rule.age_days < 0:
            errors['age_days'] = 'must be a non-negative integer'

        if errors:
            detail = '; '.join(f"{field} {problem}" for field, problem in errors.items())
            raise ValidationError(f"Invalid rule: {detail}")
