"""Placeholder substitution for user-supplied request body templates."""
from __future__ import annotations

import json
import logging
from typing import Optional

from .config import IMAGE_PLACEHOLDER, TEXT_PLACEHOLDER, ImageSupport

logger = logging.getLogger(__name__)

IMAGE_URL_NOT_SUPPORTED = "IMAGE_URL_NOT_SUPPORTED"


def _substitute(template: str, text: str, image: Optional[str]) -> str:
    rendered = template.replace(TEXT_PLACEHOLDER, text)
    if image is not None:
        rendered = rendered.replace(IMAGE_PLACEHOLDER, image)
    return rendered


def _normalise_json(body: str) -> Optional[str]:
    try:
        return json.dumps(json.loads(body), ensure_ascii=False, separators=(",", ":"))
    except ValueError:
        return None


def render_body_template(
    template: str,
    text: str,
    image_b64: Optional[str] = None,
    image_support: ImageSupport = ImageSupport.NONE,
) -> str:
    """Fill ``{{text}}`` (and ``{{image}}``) into ``template`` and return the request body.

    The text is substituted JSON-escaped first, so prompts containing quotes,
    backslashes or newlines still yield a valid JSON document. If that does
    not parse, a raw substitution is tried, and if neither parses the raw
    string is sent as it is.
    """

    text = text or ""
    image: Optional[str] = None
    if image_b64 is not None:
        if image_support is ImageSupport.BASE64:
            image = image_b64
        elif image_support is ImageSupport.URL:
            image = IMAGE_URL_NOT_SUPPORTED

    escaped_text = json.dumps(text, ensure_ascii=False)[1:-1]
    body = _normalise_json(_substitute(template, escaped_text, image))
    if body is not None:
        return body

    raw = _substitute(template, text, image)
    body = _normalise_json(raw)
    if body is not None:
        return body

    logger.debug("Body template is not JSON, sending verbatim", extra={"length": len(raw)})
    return raw
