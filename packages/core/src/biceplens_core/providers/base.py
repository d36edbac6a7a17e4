"""Base completion provider implementing the Template Method pattern.

All providers share the same contract:
    complete() → _call_api()          ← only this differs per provider
              ↘ _translate_error()    ← maps SDK exceptions to TransportError

Subclasses implement three things only:
  - __init__: validate and store the SDK client
  - _call_api: make one raw API call and return the text response
  - _translate_error: classify an SDK exception

Retries are not handled here. The category reviewer wraps ``complete`` in the
shared retry policy, and SDK-level retries are switched off when the clients
are built.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from biceplens_core.errors import ErrorKind, TransportError, classify_status

logger = logging.getLogger(__name__)

_MAX_TOKENS = 4096


class BaseProvider(ABC):
    MAX_TOKENS: int = _MAX_TOKENS
    TEMPERATURE: float = 0.3

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    @property
    def name(self) -> str:
        return self.__class__.__name__

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        """Make one completion call and return its text.

        Raises TransportError for every failure; the ``kind`` tells callers
        whether another attempt makes sense.
        """
        try:
            text = self._call_api(system_prompt, user_prompt)
        except TransportError:
            raise
        except Exception as e:
            raise self._translate_error(e) from e
        if text is None:
            raise TransportError(ErrorKind.SERVER_ERROR, f"{self.name} returned an empty completion")
        logger.debug("%s completion: %d chars", self.name, len(text))
        return text

    # ------------------------------------------------------------------ #
    # Implemented by each provider                                       #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def _call_api(self, system_prompt: str, user_prompt: str) -> str | None:
        """Make a single API call and return the raw text response."""

    def _translate_error(self, exc: Exception) -> TransportError:
        """Classify an arbitrary exception. Providers override this with SDK-aware mapping."""
        status = getattr(exc, "status_code", None)
        if status is not None:
            return TransportError(classify_status(status), f"{self.name}: {exc}", status_code=status)
        if isinstance(exc, TimeoutError):
            return TransportError(ErrorKind.TIMEOUT, f"{self.name}: {exc}")
        if isinstance(exc, ConnectionError):
            return TransportError(ErrorKind.SERVER_ERROR, f"{self.name}: {exc}")
        return TransportError(ErrorKind.BAD_REQUEST, f"{self.name}: {type(exc).__name__}: {exc}")


def translate_sdk_error(sdk, exc: Exception, provider_name: str) -> TransportError | None:
    """Map the exception hierarchy shared by the ``openai`` and ``anthropic`` SDKs.

    Both SDKs expose the same class names (APITimeoutError, RateLimitError,
    AuthenticationError ...), so one mapping serves both. Returns None when
    the exception is not one of the SDK's own.
    """
    message = f"{provider_name}: {exc}"
    if isinstance(exc, sdk.APITimeoutError):
        return TransportError(ErrorKind.TIMEOUT, message)
    if isinstance(exc, sdk.APIConnectionError):
        return TransportError(ErrorKind.SERVER_ERROR, message)
    if isinstance(exc, (sdk.AuthenticationError, sdk.PermissionDeniedError)):
        return TransportError(ErrorKind.AUTH_FAILED, message, status_code=exc.status_code)
    if isinstance(exc, sdk.RateLimitError):
        return TransportError(ErrorKind.RATE_LIMITED, message, status_code=exc.status_code)
    if isinstance(exc, sdk.APIStatusError):
        return TransportError(classify_status(exc.status_code), message, status_code=exc.status_code)
    return None
