from __future__ import annotations

import logging
from collections.abc import Sequence

from quotahub.core.quotas.matching import MatchRule, compile_rules
from quotahub.core.quotas.models import AggregationGroup
from quotahub.core.quotas.types import QuotaEntry

logger = logging.getLogger(__name__)


def match_target(entry: QuotaEntry) -> str:
    return f"{entry.id} {entry.provider_name}"


def passes_provider_filter(entry: QuotaEntry, provider_filter: str | None) -> bool:
    if not provider_filter:
        return True
    needle = provider_filter.lower()
    return needle in entry.provider_name.lower() or entry.id.lower().startswith(needle)


class GroupResolver:
    def __init__(self) -> None:
        self._compiled: dict[str, tuple[tuple[str, ...], tuple[MatchRule, ...]]] = {}

    def rules_for(self, group: AggregationGroup) -> tuple[MatchRule, ...]:
        cached = self._compiled.get(group.id)
        if cached is not None and cached[0] == group.patterns:
            return cached[1]
        rules = compile_rules(group.patterns)
        self._compiled[group.id] = (group.patterns, rules)
        return rules

    def resolve(self, pool: Sequence[QuotaEntry], group: AggregationGroup) -> list[QuotaEntry]:
        sources = set(group.sources)
        rules = self.rules_for(group)
        matched: list[QuotaEntry] = []
        for entry in pool:
            if entry.id in sources:
                matched.append(entry)
                continue
            if not rules or not passes_provider_filter(entry, group.provider_filter):
                continue
            target = match_target(entry)
            if any(rule.matches(target) for rule in rules):
                matched.append(entry)
        return matched

    def resolve_all(
        self,
        pool: Sequence[QuotaEntry],
        groups: Sequence[AggregationGroup],
    ) -> tuple[list[tuple[AggregationGroup, list[QuotaEntry]]], list[QuotaEntry]]:
        remaining = list(pool)
        assignments: list[tuple[AggregationGroup, list[QuotaEntry]]] = []
        for group in groups:
            members = self.resolve(remaining, group)
            if not members:
                continue
            consumed = {entry.id for entry in members}
            remaining = [entry for entry in remaining if entry.id not in consumed]
            assignments.append((group, members))
            logger.debug("Group resolved group_id=%s members=%d", group.id, len(members))
        return assignments, remaining
