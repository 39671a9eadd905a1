"""Pluggable OCR and AI service adapters."""

from .adapter import ServiceAdapter
from .config import (
    CustomProviderConfig,
    FixedProviderConfig,
    ImageEncoding,
    ImageSupport,
    ServiceConfig,
    service_config_from_dict,
)
from .paths import IndexSegment, KeySegment, extract_text_at, parse_path, resolve_path
from .providers import (
    CustomAIProvider,
    CustomOCRProvider,
    LocalServerProvider,
    OCRSpaceProvider,
    OpenAIChatProvider,
    PreparedRequest,
    ServiceProvider,
    provider_for,
)
from .templates import render_body_template

__all__ = [
    "ServiceAdapter",
    "CustomProviderConfig",
    "FixedProviderConfig",
    "ImageEncoding",
    "ImageSupport",
    "ServiceConfig",
    "service_config_from_dict",
    "IndexSegment",
    "KeySegment",
    "extract_text_at",
    "parse_path",
    "resolve_path",
    "CustomAIProvider",
    "CustomOCRProvider",
    "LocalServerProvider",
    "OCRSpaceProvider",
    "OpenAIChatProvider",
    "PreparedRequest",
    "ServiceProvider",
    "provider_for",
    "render_body_template",
]
