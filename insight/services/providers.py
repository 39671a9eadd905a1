"""Request builders and response readers, one per service family."""
from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from insight.config import get_settings
from insight.core.errors import ConfigMissingError, ServiceError
from insight.core.models import NO_TEXT_DETECTED, CaptureIntent, CroppedImage, normalize_text

from .config import (
    LOCAL,
    OCRSPACE,
    OPENAI,
    CustomProviderConfig,
    FixedProviderConfig,
    ImageEncoding,
    ServiceConfig,
)
from .paths import extract_text_at
from .templates import render_body_template

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You are a helpful assistant."
IMAGE_NOT_SUPPORTED_NOTE = "[Note: An image was included but this model does not support image input]"
DEFAULT_OPENAI_MODEL = "gpt-4o"
UPLOAD_FILENAME = "screenshot.png"


@dataclass(slots=True)
class PreparedRequest:
    """Everything needed to issue one POST through ``httpx``."""

    url: str
    method: str = "POST"
    headers: Dict[str, str] = field(default_factory=dict)
    json: Optional[Any] = None
    content: Optional[str] = None
    data: Optional[Dict[str, str]] = None
    files: Optional[Dict[str, Tuple[str, bytes, str]]] = None

    def send_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {"headers": self.headers}
        for name in ("json", "content", "data", "files"):
            value = getattr(self, name)
            if value is not None:
                kwargs[name] = value
        return kwargs


class ServiceProvider(ABC):
    """One remote service family."""

    name: str = "service"

    @abstractmethod
    def build_request(self, *, image: Optional[CroppedImage] = None, prompt: str = "") -> PreparedRequest:
        """Return the HTTP request for ``image`` and/or ``prompt``."""

    @abstractmethod
    def extract_response(self, document: Any) -> str:
        """Pull the text out of a decoded JSON response."""


class OCRSpaceProvider(ServiceProvider):
    name = OCRSPACE

    def __init__(self, config: FixedProviderConfig) -> None:
        config.validate()
        self.config = config

    def build_request(self, *, image: Optional[CroppedImage] = None, prompt: str = "") -> PreparedRequest:
        if image is None:
            raise ConfigMissingError("OCR.space needs an image")
        return PreparedRequest(
            url=self.config.endpoint,
            headers={"apikey": self.config.api_key},
            data={
                "language": str(self.config.extra_params.get("language", "eng")),
                "isOverlayRequired": "false",
                "scale": "true",
                "OCREngine": str(self.config.extra_params.get("OCREngine", 2)),
            },
            files={"file": (UPLOAD_FILENAME, image.data, "image/png")},
        )

    def extract_response(self, document: Any) -> str:
        if not isinstance(document, Mapping):
            raise ServiceError("OCR.space returned an unexpected response")
        if document.get("IsErroredOnProcessing"):
            message = document.get("ErrorMessage")
            if isinstance(message, list):
                message = "; ".join(str(part) for part in message)
            raise ServiceError(f"OCR processing error: {message or 'unknown error'}")

        results = document.get("ParsedResults") or []
        if not isinstance(results, list):
            raise ServiceError("OCR.space returned malformed ParsedResults")
        lines = [
            str(result.get("ParsedText")).strip()
            for result in results
            if isinstance(result, Mapping) and result.get("ParsedText")
        ]
        return normalize_text("\n".join(lines))


class LocalServerProvider(ServiceProvider):
    """Self-hosted OCR server accepting ``{"image": <data url>}``."""

    name = LOCAL

    def __init__(self, config: FixedProviderConfig) -> None:
        self.config = config

    def build_request(self, *, image: Optional[CroppedImage] = None, prompt: str = "") -> PreparedRequest:
        if image is None:
            raise ConfigMissingError("the local OCR server needs an image")
        return PreparedRequest(url=self.config.endpoint, json={"image": image.data_url()})

    def extract_response(self, document: Any) -> str:
        if not isinstance(document, Mapping):
            return NO_TEXT_DETECTED
        return normalize_text(document.get("extracted_text"))


class OpenAIChatProvider(ServiceProvider):
    name = OPENAI

    def __init__(
        self,
        config: FixedProviderConfig,
        *,
        vision_model_pattern: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> None:
        config.validate()
        settings = get_settings()
        self.config = config
        self.model = str(config.extra_params.get("model") or DEFAULT_OPENAI_MODEL)
        self.max_tokens = int(config.extra_params.get("max_tokens") or max_tokens or settings.openai_max_tokens)
        self._vision_pattern = re.compile(vision_model_pattern or settings.vision_model_pattern)

    def supports_images(self) -> bool:
        return bool(self._vision_pattern.search(self.model))

    def build_messages(self, prompt: str, image: Optional[CroppedImage]) -> List[Dict[str, Any]]:
        messages: List[Dict[str, Any]] = [{"role": "system", "content": SYSTEM_PROMPT}]
        if image is None:
            messages.append({"role": "user", "content": prompt})
        elif self.supports_images():
            content: List[Dict[str, Any]] = []
            if prompt:
                content.append({"type": "text", "text": prompt})
            content.append({"type": "image_url", "image_url": {"url": image.data_url()}})
            messages.append({"role": "user", "content": content})
        else:
            note = f"{prompt}\n\n{IMAGE_NOT_SUPPORTED_NOTE}" if prompt else IMAGE_NOT_SUPPORTED_NOTE
            messages.append({"role": "user", "content": note})
        return messages

    def build_request(self, *, image: Optional[CroppedImage] = None, prompt: str = "") -> PreparedRequest:
        return PreparedRequest(
            url=self.config.endpoint,
            headers={"Authorization": f"Bearer {self.config.api_key}"},
            json={
                "model": self.model,
                "messages": self.build_messages(prompt, image),
                "max_tokens": self.max_tokens,
            },
        )

    def extract_response(self, document: Any) -> str:
        choices = document.get("choices") if isinstance(document, Mapping) else None
        if not choices:
            raise ServiceError("No response generated")
        return extract_text_at(document, "choices[0].message.content")


class CustomOCRProvider(ServiceProvider):
    name = "custom"

    def __init__(self, config: CustomProviderConfig) -> None:
        config.validate()
        self.config = config

    def build_request(self, *, image: Optional[CroppedImage] = None, prompt: str = "") -> PreparedRequest:
        if image is None:
            raise ConfigMissingError("custom OCR needs an image")
        param = self.config.request_param_name
        if self.config.image_encoding is ImageEncoding.MULTIPART:
            # httpx sets the multipart boundary itself.
            headers = {
                key: value for key, value in self.config.headers.items() if key.lower() != "content-type"
            }
            return PreparedRequest(
                url=self.config.endpoint,
                headers=headers,
                files={param: (UPLOAD_FILENAME, image.data, "image/png")},
            )
        headers = {"Content-Type": "application/json", **self.config.headers}
        return PreparedRequest(url=self.config.endpoint, headers=headers, json={param: image.base64()})

    def extract_response(self, document: Any) -> str:
        return extract_text_at(document, self.config.response_path)


class CustomAIProvider(ServiceProvider):
    name = "custom"

    def __init__(self, config: CustomProviderConfig) -> None:
        config.validate(for_ai=True)
        self.config = config

    def build_request(self, *, image: Optional[CroppedImage] = None, prompt: str = "") -> PreparedRequest:
        body = render_body_template(
            self.config.body_template or "",
            prompt,
            image_b64=image.base64() if image is not None else None,
            image_support=self.config.image_support,
        )
        headers = {"Content-Type": "application/json", **self.config.headers}
        return PreparedRequest(url=self.config.endpoint, headers=headers, content=body)

    def extract_response(self, document: Any) -> str:
        return extract_text_at(document, self.config.response_path)


def provider_for(config: ServiceConfig, intent: CaptureIntent) -> ServiceProvider:
    """Select the provider implementation for ``config`` and the requested path."""

    if isinstance(config, CustomProviderConfig):
        return CustomAIProvider(config) if intent is CaptureIntent.AI else CustomOCRProvider(config)

    if intent is CaptureIntent.AI:
        if config.name == OPENAI:
            return OpenAIChatProvider(config)
        raise ConfigMissingError(f"{config.name} cannot answer AI queries")

    if config.name == OCRSPACE:
        return OCRSpaceProvider(config)
    if config.name == LOCAL:
        return LocalServerProvider(config)
    raise ConfigMissingError(f"{config.name} cannot extract text")
