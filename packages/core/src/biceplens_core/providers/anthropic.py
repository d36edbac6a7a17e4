from __future__ import annotations

from biceplens_core.providers.base import BaseProvider, translate_sdk_error


class AnthropicProvider(BaseProvider):
    MODEL = "claude-sonnet-4-20250514"
    TEMPERATURE = 0.3

    def __init__(self, api_key: str, model: str | None = None, timeout: float = 60.0):
        try:
            import anthropic
        except ImportError:
            raise ImportError(
                "The 'anthropic' package is required for this provider. "
                "Install it with: pip install 'biceplens[anthropic]'"
            )
        self._sdk = anthropic
        self.model = model or self.MODEL
        # max_retries=0: the shared retry policy owns backoff.
        self.client = anthropic.Anthropic(api_key=api_key, timeout=timeout, max_retries=0)

    def _call_api(self, system_prompt: str, user_prompt: str) -> str | None:
        # Optional dependency; __init__ has already imported it.
        from anthropic.types import TextBlock

        response = self.client.messages.create(
            model=self.model,
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
            temperature=self.TEMPERATURE,
            max_tokens=self.MAX_TOKENS,
        )
        text_blocks = [block.text for block in response.content if isinstance(block, TextBlock)]
        return "".join(text_blocks).strip()

    def _translate_error(self, exc: Exception):
        return translate_sdk_error(self._sdk, exc, self.name) or super()._translate_error(exc)
