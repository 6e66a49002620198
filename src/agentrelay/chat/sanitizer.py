"""Validation and sanitization of message text.

Text routed between conversations ends up rendered in the webview, so
markup and script vectors are stripped before it is stored. Matching is
regex based and case-insensitive.
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass

DEFAULT_MAX_INPUT_LENGTH = 100_000

# Script vectors removed after tags are stripped
_XSS_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>",
        r"\bon\w+\s*=\s*\"[^\"]*\"",
        r"\bon\w+\s*=\s*'[^']*'",
        r"\bon\w+\s*=\s*[^\s>\"']+",
        r"javascript\s*:",
        r"vbscript\s*:",
        r"data\s*:\s*text/html",
        r"expression\s*\(",
    )
)

_DANGEROUS_TAGS = (
    "script", "iframe", "object", "embed", "form", "input", "button",
    "select", "textarea", "link", "meta", "base", "applet", "frame",
    "frameset", "style", "svg", "math", "img", "video", "audio",
)

_DANGEROUS_TAG_PATTERN = re.compile(
    r"<\s*(?:" + "|".join(_DANGEROUS_TAGS) + r")\b", re.IGNORECASE
)
_TAG_PATTERN = re.compile(r"<[^>]*>")
_ENTITY_PATTERN = re.compile(r"&(?:lt|gt|amp|quot|#39);")
_CONTROL_WHITESPACE = re.compile(r"[\t\f\v]+")

_ENTITIES = {"&lt;": "<", "&gt;": ">", "&amp;": "&", "&quot;": '"', "&#39;": "'"}


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating one piece of input."""

    valid: bool
    sanitized_value: str | None = None
    reason: str | None = None


class InputSanitizer:
    """Length checks plus markup and script removal for message text."""

    def __init__(self, max_input_length: int = DEFAULT_MAX_INPUT_LENGTH) -> None:
        self.max_input_length = max_input_length

    def validate(self, text: str | None, *, required: bool = True) -> ValidationResult:
        """Check length and emptiness, then sanitize.

        Args:
            text: Raw input
            required: Reject empty or whitespace-only input

        Returns:
            ValidationResult; ``sanitized_value`` is set when valid.
        """
        if text is None:
            if required:
                return ValidationResult(False, reason="Input is required")
            return ValidationResult(True, sanitized_value="")

        text = str(text)
        if required and not text.strip():
            return ValidationResult(False, reason="Input is required")
        if len(text) > self.max_input_length:
            return ValidationResult(
                False,
                reason=f"Input exceeds maximum length of {self.max_input_length} characters",
            )
        return ValidationResult(True, sanitized_value=self.sanitize(text))

    def sanitize(self, text: str) -> str:
        """Remove null bytes, HTML tags and script vectors.

        Non-blank input never sanitizes to an empty string: when stripping
        would remove everything, the HTML-escaped text is returned instead.
        """
        if not text:
            return ""

        cleaned = text.replace("\0", "")
        # Decode entities first so encoded tags are stripped too
        cleaned = _ENTITY_PATTERN.sub(lambda m: _ENTITIES[m.group(0)], cleaned)
        cleaned = _TAG_PATTERN.sub("", cleaned)
        for pattern in _XSS_PATTERNS:
            cleaned = pattern.sub("", cleaned)
        cleaned = _CONTROL_WHITESPACE.sub(" ", cleaned)
        # Any "<" left cannot open a tag once escaped
        cleaned = cleaned.replace("<", "&lt;").replace(">", "&gt;")

        if cleaned.strip() or not text.replace("\0", "").strip():
            return cleaned
        return html.escape(text.replace("\0", ""))

    def contains_xss(self, text: str | None) -> bool:
        if not text:
            return False
        if any(pattern.search(text) for pattern in _XSS_PATTERNS):
            return True
        return _DANGEROUS_TAG_PATTERN.search(text) is not None
