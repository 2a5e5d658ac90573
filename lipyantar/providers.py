"""Remote script conversion providers."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Optional

import httpx
import structlog

from .errors import ConfigurationError, TransliterationServiceError

if TYPE_CHECKING:
    from .configuration import LipyantarConfig

logger = structlog.get_logger(__name__)

DEFAULT_API_BASE_URL = "https://aksharamukha-plugin.appspot.com/api/public"
DEFAULT_TIMEOUT_SECONDS = 30.0
INTERMEDIATE_SCRIPT = "IAST"


class TransliterationProvider(ABC):
    """Abstract adapter for remote script conversion services."""

    name = "abstract"

    @abstractmethod
    async def transliterate(
        self,
        text: str,
        *,
        source_script: str,
        target_script: str = INTERMEDIATE_SCRIPT,
    ) -> str:
        """Convert ``text`` and return the result, raising on any failure."""

    async def aclose(self) -> None:
        """Release network resources held by the provider."""


class EchoTransliterationProvider(TransliterationProvider):
    """A provider that returns the original text (useful for testing)."""

    name = "echo"

    async def transliterate(
        self,
        text: str,
        *,
        source_script: str,
        target_script: str = INTERMEDIATE_SCRIPT,
    ) -> str:
        return text


class AksharamukhaProvider(TransliterationProvider):
    """Provider backed by the Aksharamukha public web API."""

    name = "aksharamukha"

    def __init__(
        self,
        *,
        base_url: str = DEFAULT_API_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client: Optional[httpx.AsyncClient] = None,
        debug: bool = False,
    ) -> None:
        self.base_url = base_url
        self.debug = debug
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def transliterate(
        self,
        text: str,
        *,
        source_script: str,
        target_script: str = INTERMEDIATE_SCRIPT,
    ) -> str:
        params = {"source": source_script, "target": target_script, "text": text}
        self._log_debug("provider.request", params)

        try:
            response = await self._client.get(self.base_url, params=params)
        except httpx.HTTPError as exc:
            raise TransliterationServiceError(
                f"Transliteration service unreachable: {exc}"
            ) from exc

        if not response.is_success:
            raise TransliterationServiceError(
                f"Transliteration service returned HTTP {response.status_code}."
            )

        body = response.text
        self._log_debug("provider.response.raw", body)
        return self._normalise_response(body)

    def _normalise_response(self, body: str) -> str:
        """Accept either a raw text body or a JSON array of strings.

        The public endpoint has answered in both shapes over time, so the
        detection is a compatibility layer rather than a protocol.
        """

        stripped = body.strip()
        if not stripped.startswith("["):
            return body

        try:
            payload: Any = json.loads(stripped)
        except json.JSONDecodeError:
            # A raw result can legitimately begin with a bracket.
            return body

        if isinstance(payload, list) and payload and isinstance(payload[0], str):
            return payload[0]

        raise TransliterationServiceError(
            "Transliteration service response malformed: expected a list of strings."
        )

    def _log_debug(self, label: str, payload: Any) -> None:
        if not self.debug:
            return
        logger.debug(label, payload=payload, provider=self.name)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def build_provider(
    name: str | None,
    *,
    config: "LipyantarConfig | None" = None,
    client: Optional[httpx.AsyncClient] = None,
    debug: bool = False,
) -> TransliterationProvider:
    """Factory to create providers by name."""

    normalized = (name or "aksharamukha").strip().lower()
    if normalized in {"aksharamukha", "default", "remote"}:
        if config is None:
            return AksharamukhaProvider(client=client, debug=debug)
        return AksharamukhaProvider(
            base_url=config.api_base_url,
            timeout=config.request_timeout,
            client=client,
            debug=debug or config.provider_debug,
        )
    if normalized in {"echo", "noop", "mock"}:
        return EchoTransliterationProvider()
    raise ConfigurationError(f"Unknown transliteration provider '{name}'.")
