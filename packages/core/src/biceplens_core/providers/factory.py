from __future__ import annotations

from biceplens_core.errors import ConfigurationError
from biceplens_core.providers.base import BaseProvider

PROVIDERS = ("azure", "openai", "anthropic")


def get_provider(config: dict) -> BaseProvider:
    """Build the completion provider named by ``config["provider"]``."""
    provider = config.get("provider", "azure")
    timeout = float(config.get("request_timeout", 60.0))
    model = config.get("model")

    if provider == "azure":
        from biceplens_core.providers.openai import AzureOpenAIProvider

        missing = [
            env
            for key, env in (
                ("azure_openai_endpoint", "AZURE_OPENAI_ENDPOINT"),
                ("azure_openai_api_key", "AZURE_OPENAI_API_KEY"),
                ("azure_openai_deployment", "AZURE_OPENAI_DEPLOYMENT"),
            )
            if not config.get(key)
        ]
        if missing:
            raise ConfigurationError(f"Missing required environment variables: {', '.join(missing)}")
        return AzureOpenAIProvider(
            endpoint=config["azure_openai_endpoint"],
            api_key=config["azure_openai_api_key"],
            deployment=model or config["azure_openai_deployment"],
            api_version=config.get("azure_openai_api_version"),
            timeout=timeout,
        )
    if provider == "openai":
        from biceplens_core.providers.openai import OpenAIProvider

        if not config.get("openai_api_key"):
            raise ConfigurationError("OPENAI_API_KEY environment variable is not set.")
        return OpenAIProvider(api_key=config["openai_api_key"], model=model, timeout=timeout)
    if provider == "anthropic":
        from biceplens_core.providers.anthropic import AnthropicProvider

        if not config.get("anthropic_api_key"):
            raise ConfigurationError("ANTHROPIC_API_KEY environment variable is not set.")
        return AnthropicProvider(api_key=config["anthropic_api_key"], model=model, timeout=timeout)
    raise ConfigurationError(f"Unknown provider: {provider!r}. Choose one of: {', '.join(PROVIDERS)}.")
