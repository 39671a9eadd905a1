"""Single-round-trip HTTP adapter in front of every OCR and AI provider."""
from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Union

import httpx

from insight.config import get_settings
from insight.core.errors import InsightError, ServiceError
from insight.core.models import CaptureIntent, CroppedImage, ExtractionResult, normalize_text

from .config import ServiceConfig, service_config_from_dict
from .providers import ServiceProvider, provider_for

logger = logging.getLogger(__name__)

ConfigLike = Union[ServiceConfig, Mapping[str, Any]]


class ServiceAdapter:
    """Sends one request per call and reports the outcome as an :class:`ExtractionResult`.

    Errors never propagate out of :meth:`extract_text` or :meth:`query`;
    they are returned as structured failures. There are no retries and,
    unless a timeout is configured, no deadline.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Union[float, httpx.Timeout, None] = None,
    ) -> None:
        if timeout is None:
            timeout = get_settings().request_timeout_seconds
        self._timeout = timeout if isinstance(timeout, httpx.Timeout) else httpx.Timeout(timeout)
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> "ServiceAdapter":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def extract_text(self, image: CroppedImage, config: ConfigLike) -> ExtractionResult:
        """Run OCR on ``image`` with the configured service."""

        return await self._round_trip(config, CaptureIntent.OCR, image=image, prompt="")

    async def query(self, prompt: str, image: Optional[CroppedImage], config: ConfigLike) -> ExtractionResult:
        """Ask the configured AI service about ``prompt`` and optionally ``image``."""

        return await self._round_trip(config, CaptureIntent.AI, image=image, prompt=prompt or "")

    async def _round_trip(
        self,
        config: ConfigLike,
        intent: CaptureIntent,
        *,
        image: Optional[CroppedImage],
        prompt: str,
    ) -> ExtractionResult:
        try:
            provider = self._provider(config, intent)
            request = provider.build_request(image=image, prompt=prompt)
        except InsightError as exc:
            logger.warning("Service is not usable", extra={"intent": intent.value, "error": exc.detail})
            return ExtractionResult.failure(exc.to_info())

        logger.info(
            "Sending service request",
            extra={"service": provider.name, "intent": intent.value, "url": request.url},
        )
        try:
            response = await self.client.request(request.method, request.url, **request.send_kwargs())
        except httpx.HTTPError as exc:
            logger.warning("Service request failed", extra={"service": provider.name}, exc_info=exc)
            return ExtractionResult.failure(
                ServiceError(f"{provider.name} request failed: {str(exc) or exc.__class__.__name__}").to_info()
            )

        if not response.is_success:
            logger.warning(
                "Service returned an error status",
                extra={"service": provider.name, "status": response.status_code},
            )
            return ExtractionResult.failure(
                ServiceError(
                    f"{provider.name} returned status {response.status_code}",
                    status=response.status_code,
                ).to_info()
            )

        try:
            document = response.json()
        except ValueError:
            return ExtractionResult.failure(
                ServiceError(
                    f"{provider.name} returned a non-JSON response",
                    status=response.status_code,
                ).to_info()
            )

        try:
            text = provider.extract_response(document)
        except InsightError as exc:
            logger.warning(
                "Could not read service response",
                extra={"service": provider.name, "kind": exc.kind.value, "error": exc.detail},
            )
            return ExtractionResult.failure(exc.to_info())
        except (TypeError, AttributeError, ValueError) as exc:
            logger.warning(
                "Malformed service response",
                extra={"service": provider.name, "error": str(exc)},
            )
            return ExtractionResult.failure(
                ServiceError(
                    f"{provider.name} returned a malformed response: {str(exc) or exc.__class__.__name__}",
                    status=response.status_code,
                ).to_info()
            )

        return ExtractionResult.success(normalize_text(text))

    @staticmethod
    def _provider(config: ConfigLike, intent: CaptureIntent) -> ServiceProvider:
        if isinstance(config, Mapping):
            config = service_config_from_dict(config)
        return provider_for(config, intent)
