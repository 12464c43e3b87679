from __future__ import annotations


class QuotaHubError(Exception):
    """Base exception for all engine errors."""

    code: str = "internal_error"
    message: str = "Unexpected error"

    def __init__(self, message: str | None = None, *, code: str | None = None) -> None:
        self.message = message or self.__class__.message
        if code is not None:
            self.code = code
        super().__init__(self.message)


class ProviderFetchError(QuotaHubError):
    code = "provider_fetch_failed"
    message = "Provider fetch failed"

    def __init__(self, provider_id: str, message: str | None = None) -> None:
        super().__init__(message or f"Provider {provider_id} fetch failed")
        self.provider_id = provider_id


class HistoryFormatError(QuotaHubError):
    code = "invalid_history_format"
    message = "History file has an invalid format"
