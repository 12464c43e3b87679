from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import Protocol, runtime_checkable

from quotahub.core.quotas.types import QuotaEntry

logger = logging.getLogger(__name__)


@runtime_checkable
class QuotaProvider(Protocol):
    id: str

    async def fetch_quota(self) -> Sequence[QuotaEntry | Mapping[str, object]]: ...


class ProviderRegistry:
    def __init__(self, providers: Iterable[QuotaProvider] = ()) -> None:
        self._providers: dict[str, QuotaProvider] = {}
        for provider in providers:
            self.register(provider)

    def register(self, provider: QuotaProvider) -> bool:
        if provider.id in self._providers:
            logger.debug("Provider already registered provider_id=%s", provider.id)
            return False
        self._providers[provider.id] = provider
        return True

    def get(self, provider_id: str) -> QuotaProvider | None:
        return self._providers.get(provider_id)

    def get_all(self) -> list[QuotaProvider]:
        return list(self._providers.values())

    def __len__(self) -> int:
        return len(self._providers)

    def __contains__(self, provider_id: object) -> bool:
        return provider_id in self._providers
