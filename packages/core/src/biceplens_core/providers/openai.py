from __future__ import annotations

import openai

from biceplens_core.providers.base import BaseProvider, translate_sdk_error

DEFAULT_AZURE_API_VERSION = "2024-06-01"


class OpenAIProvider(BaseProvider):
    MODEL = "gpt-4o"
    # Lower than the Azure and Anthropic default; keeps the block layout stable.
    TEMPERATURE = 0.2

    def __init__(self, api_key: str, model: str | None = None, timeout: float = 60.0):
        self.model = model or self.MODEL
        # max_retries=0: the shared retry policy owns backoff.
        self.client = openai.OpenAI(api_key=api_key, timeout=timeout, max_retries=0)

    def _call_api(self, system_prompt: str, user_prompt: str) -> str | None:
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=self.TEMPERATURE,
            max_tokens=self.MAX_TOKENS,
        )
        return response.choices[0].message.content

    def _translate_error(self, exc: Exception):
        return translate_sdk_error(openai, exc, self.name) or super()._translate_error(exc)


class AzureOpenAIProvider(OpenAIProvider):
    """Azure OpenAI deployment. The deployment name is passed where OpenAI expects a model."""

    TEMPERATURE = 0.3

    def __init__(
        self,
        endpoint: str,
        api_key: str,
        deployment: str,
        api_version: str | None = None,
        timeout: float = 60.0,
    ):
        self.model = deployment
        self.client = openai.AzureOpenAI(
            azure_endpoint=endpoint,
            api_key=api_key,
            api_version=api_version or DEFAULT_AZURE_API_VERSION,
            timeout=timeout,
            max_retries=0,
        )
