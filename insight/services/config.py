"""Service configuration records read from the durable store or a JSON file."""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Union

from insight.core.errors import ConfigMissingError

from .paths import parse_path

OCRSPACE = "ocrspace"
LOCAL = "local"
OPENAI = "openai"
CUSTOM = "custom"

FIXED_PROVIDERS = (OCRSPACE, LOCAL, OPENAI)

DEFAULT_ENDPOINTS = {
    OCRSPACE: "https://api.ocr.space/parse/image",
    LOCAL: "http://localhost:8000",
    OPENAI: "https://api.openai.com/v1/chat/completions",
}

# Providers that refuse to run without a key.
_KEYED_PROVIDERS = (OCRSPACE, OPENAI)

TEXT_PLACEHOLDER = "{{text}}"
IMAGE_PLACEHOLDER = "{{image}}"


class ImageEncoding(str, enum.Enum):
    BASE64 = "base64"
    MULTIPART = "multipart"


class ImageSupport(str, enum.Enum):
    NONE = "none"
    BASE64 = "base64"
    URL = "url"


@dataclass(slots=True)
class FixedProviderConfig:
    """A built-in provider addressed by name."""

    name: str
    endpoint: str = ""
    api_key: str = ""
    extra_params: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.name not in FIXED_PROVIDERS:
            raise ConfigMissingError(f"unknown service {self.name!r}")
        if not self.endpoint:
            self.endpoint = DEFAULT_ENDPOINTS[self.name]

    def validate(self) -> None:
        if self.name in _KEYED_PROVIDERS and not self.api_key:
            raise ConfigMissingError(f"{self.name} requires an API key")

    @property
    def label(self) -> str:
        return self.name


@dataclass(slots=True)
class CustomProviderConfig:
    """User-described HTTP endpoint for either OCR or AI."""

    endpoint: str
    response_path: str
    headers: Dict[str, str] = field(default_factory=dict)
    image_encoding: ImageEncoding = ImageEncoding.BASE64
    request_param_name: str = "image"
    body_template: Optional[str] = None
    image_support: ImageSupport = ImageSupport.NONE

    def validate(self, *, for_ai: bool = False) -> None:
        if not self.endpoint:
            raise ConfigMissingError("custom service requires an endpoint URL")
        if not self.response_path or not self.response_path.strip():
            raise ConfigMissingError("custom service requires a response path")
        parse_path(self.response_path)
        if for_ai:
            if not self.body_template:
                raise ConfigMissingError("custom AI service requires a body template")
            if TEXT_PLACEHOLDER not in self.body_template:
                raise ConfigMissingError(f"custom AI body template must contain {TEXT_PLACEHOLDER}")
        elif not self.request_param_name:
            raise ConfigMissingError("custom OCR service requires a request parameter name")

    @property
    def label(self) -> str:
        return CUSTOM


ServiceConfig = Union[FixedProviderConfig, CustomProviderConfig]


def service_config_from_dict(data: Optional[Mapping[str, Any]]) -> ServiceConfig:
    """Build a service config from its stored JSON shape.

    Fixed providers look like ``{"service": "openai", "apiKey": "...",
    "model": "gpt-4o"}``; anything not recognised is kept in
    ``extra_params``. Custom providers use ``{"service": "custom", "url":
    ..., "headers": {...}, "imageFormat": ..., "paramName": ...,
    "bodyTemplate": ..., "responsePath": ..., "imageSupport": ...}``.
    """

    if not data:
        raise ConfigMissingError("no service configured")

    service = str(data.get("service") or "").strip().lower()
    if not service:
        raise ConfigMissingError("service name is missing")

    if service != CUSTOM:
        extras = {
            key: value
            for key, value in data.items()
            if key not in {"service", "endpoint", "url", "serverUrl", "apiKey", "api_key"}
        }
        return FixedProviderConfig(
            name=service,
            endpoint=str(data.get("endpoint") or data.get("url") or data.get("serverUrl") or ""),
            api_key=str(data.get("apiKey") or data.get("api_key") or ""),
            extra_params=extras,
        )

    headers = data.get("headers") or {}
    if not isinstance(headers, Mapping):
        raise ConfigMissingError("custom service headers must be an object")

    try:
        encoding = ImageEncoding(str(data.get("imageFormat") or data.get("imageEncoding") or "base64"))
        support = ImageSupport(str(data.get("imageSupport") or "none"))
    except ValueError as exc:
        raise ConfigMissingError(str(exc)) from exc

    return CustomProviderConfig(
        endpoint=str(data.get("url") or data.get("endpoint") or ""),
        response_path=str(data.get("responsePath") or ""),
        headers={str(key): str(value) for key, value in headers.items()},
        image_encoding=encoding,
        request_param_name=str(data.get("paramName") or data.get("requestParamName") or "image"),
        body_template=data.get("bodyTemplate"),
        image_support=support,
    )
