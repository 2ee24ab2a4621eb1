"""
Azure OpenAI backend.

Same wire format as OpenAI, different addressing: the model is selected by
deployment name in the URL and the key goes in an `api-key` header.

    POST {endpoint}/openai/deployments/{deployment}/chat/completions?api-version=...
"""

from __future__ import annotations

from toolchat.backends.openai_compat import OpenAICompatibleBackend


class AzureOpenAIBackend(OpenAICompatibleBackend):
    """Azure OpenAI chat deployment."""

    def __init__(
        self,
        name: str,
        url: str,
        deployment: str,
        api_key: str = "",
        api_version: str = "2024-06-01",
        timeout: float = 120,
    ):
        # Azure picks the model from the deployment; no "model" in the body
        super().__init__(name, url, model="", timeout=timeout, api_key=api_key)
        self.deployment = deployment
        self.api_version = api_version

    def _endpoint(self) -> str:
        return (
            f"{self.url}/openai/deployments/{self.deployment}"
            f"/chat/completions?api-version={self.api_version}"
        )

    def _headers(self) -> dict:
        return {"api-key": self.api_key} if self.api_key else {}
