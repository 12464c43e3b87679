from quotahub.modules.providers.registry import ProviderRegistry, QuotaProvider

__all__ = ["ProviderRegistry", "QuotaProvider"]
