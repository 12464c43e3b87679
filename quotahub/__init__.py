__version__ = "0.1.0"
__all__ = ["QuotaHubContext", "build_context", "quotahub_lifespan", "__version__"]


def __getattr__(name: str):
    if name in {"QuotaHubContext", "build_context", "quotahub_lifespan"}:
        from quotahub import context

        return getattr(context, name)
    raise AttributeError(name)
