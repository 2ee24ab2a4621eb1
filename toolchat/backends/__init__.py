"""
Chat-completion backends for toolchat.

Usage:
    from toolchat.backends import make_backend
    backend = make_backend(cfg)

The `backend:` section of config.yaml selects the provider:
    openai  — any OpenAI-compatible /v1/chat/completions endpoint
    azure   — an Azure OpenAI chat deployment
"""
from toolchat.backends.azure import AzureOpenAIBackend
from toolchat.backends.base import BackendResponse, CompletionBackend
from toolchat.backends.openai_compat import OpenAICompatibleBackend
from toolchat.backends.retry_wrapper import RetryableBackendWrapper


def make_backend(cfg: dict) -> CompletionBackend:
    """
    Build the completion backend described by the `backend:` config section.

    Raises:
        ValueError: If the provider is not known.
    """
    b_cfg = cfg.get("backend", {})
    provider = b_cfg.get("provider", "openai")
    timeout = b_cfg.get("timeout", 120)

    if provider == "azure":
        backend: CompletionBackend = AzureOpenAIBackend(
            name=b_cfg.get("name", "azure"),
            url=b_cfg.get("url", ""),
            deployment=b_cfg.get("deployment") or b_cfg.get("model", ""),
            api_key=b_cfg.get("api_key", ""),
            api_version=b_cfg.get("api_version", "2024-06-01"),
            timeout=timeout,
        )
    elif provider == "openai":
        backend = OpenAICompatibleBackend(
            name=b_cfg.get("name", "openai"),
            url=b_cfg.get("url", "https://api.openai.com"),
            model=b_cfg.get("model", ""),
            api_key=b_cfg.get("api_key", ""),
            timeout=timeout,
        )
    else:
        raise ValueError(
            f"Unknown backend provider: '{provider}'. Available: openai, azure"
        )

    max_retries = b_cfg.get("max_retries", 0)
    if max_retries > 0:
        backend = RetryableBackendWrapper(backend, max_retries=max_retries)
    return backend


__all__ = [
    "AzureOpenAIBackend",
    "BackendResponse",
    "CompletionBackend",
    "OpenAICompatibleBackend",
    "RetryableBackendWrapper",
    "make_backend",
]
