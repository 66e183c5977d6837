from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional

from .models import ExtractionRuleSet

logger = logging.getLogger(__name__)


class RegistryBuilder:
    """Collects rule sets at startup; ``freeze()`` hands out the lookup map."""

    def __init__(self) -> None:
        self._rules: Dict[str, ExtractionRuleSet] = {}

    def register(self, rules: ExtractionRuleSet, aliases: Iterable[str] = ()) -> "RegistryBuilder":
        for domain in (rules.domain, *rules.aliases, *aliases):
            key = domain.strip().lower()
            if key in self._rules and self._rules[key] is not rules:
                logger.warning("[extract] %s registered twice, keeping the latest", key)
            self._rules[key] = rules
        logger.debug("[extract] registered extractor for %s", rules.domain)
        return self

    def freeze(self) -> "ExtractorRegistry":
        return ExtractorRegistry(dict(self._rules))


class ExtractorRegistry:
    """Immutable hostname -> rule set map. Aliases share the same rule set value."""

    def __init__(self, rules: Mapping[str, ExtractionRuleSet]) -> None:
        self._rules = MappingProxyType(dict(rules))

    def lookup(self, hostname: Optional[str]) -> Optional[ExtractionRuleSet]:
        if not hostname:
            return None
        return self._rules.get(hostname.strip().lower())

    def domains(self) -> list:
        return sorted(self._rules)

    def __contains__(self, hostname: str) -> bool:
        return self.lookup(hostname) is not None

    def __len__(self) -> int:
        return len(self._rules)
