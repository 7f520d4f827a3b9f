"""Rate-limit and overload detection for LLM provider errors.

Provider SDKs report throttling in many shapes: exceptions with a ``status``
attribute, JSON bodies with a nested ``error`` object, bare strings produced
after the SDK gave up on its own retries, or localized messages. The helpers
here probe those shapes in a fixed priority order and decide whether a call
is worth repeating.
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Mapping
from typing import Any, Optional

from prompt_retry.domain.models.classification import ErrorClassification

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

_NESTED_MESSAGE_KEYS = ("message", "error", "type", "code")
_FLAT_MESSAGE_KEYS = ("message", "error", "code", "reason", "type")

_HTTP_STATUS_IN_MESSAGE = re.compile(r"HTTP[^\d]*(\d{3})", re.IGNORECASE)

# Core rate limit / overload signatures
_RATE_LIMIT_PATTERNS = (
    re.compile(r"rate[_\s-]?limit"),
    re.compile(r"too many requests"),
    re.compile(r"throttl"),
    re.compile(r"\b429\b"),
    re.compile(r"\btpm\b"),
    re.compile(r"tokens per minute"),
    re.compile(r"quota exceeded|exceeded (?:your )?(?:current )?quota"),
    re.compile(r"resource (?:has been )?exhausted"),
    re.compile(r"overloaded"),
)

SDK_ERROR_TYPES = (
    "rate_limit_error",
    "rate_limit_exceeded",
    "overloaded_error",
    "throttling_exception",
    "resource_exhausted",
    "resource_has_been_exhausted",
    "tokens_per_minute",
)

# Quota exceeded, frequency exceeded, throttled, rate limited
CJK_RATE_LIMIT_PHRASES = ("请求额度超限", "请求频率超限", "限流", "速率限制")

# Left over after an SDK has exhausted its own retries
_FORMATTED_PATTERNS = (
    re.compile(r"api[_\s]?rate[_\s]?limit", re.IGNORECASE),
    re.compile(r"api rate limit reached", re.IGNORECASE),
    re.compile(r"too[_\s]?many[_\s]?requests?", re.IGNORECASE),
    re.compile(r"tpm[_\s]?limit", re.IGNORECASE),
    re.compile(r"tokens per minute", re.IGNORECASE),
    re.compile(r"rate[_\s]?limit[_\s]?(?:exceeded|error)?", re.IGNORECASE),
    re.compile(r"overloaded", re.IGNORECASE),
    re.compile(r"service[_\s]?(?:unavailable|temporarily[_\s]?overloaded)", re.IGNORECASE),
    re.compile(r"请"),  # "please", as in "请稍后重试"
    re.compile(r"重试"),  # "retry"
)

_HTTP_TEXT_PATTERNS = (
    re.compile(r"\b502\b.*\bBad\s*Gateway\b", re.IGNORECASE),
    re.compile(r"\b503\b.*\bService\s*(?:Unavailable|Temporarily\s*Overloaded)", re.IGNORECASE),
)

_RETRY_AFTER_IN_MESSAGE = (
    re.compile(r"retry_after[:\s]*(\d+)", re.IGNORECASE),
    re.compile(r"retry\s*after[:\s]*(\d+)", re.IGNORECASE),
)


def _field(obj: Any, key: str) -> Any:
    """Read ``key`` from a mapping or an attribute from any other object."""
    if obj is None:
        return None
    if isinstance(obj, Mapping):
        return obj.get(key)
    return getattr(obj, key, None)


def _has_fields(obj: Any) -> bool:
    return obj is not None and not isinstance(obj, (str, bytes, int, float, bool))


def _to_number(value: Any) -> Optional[float]:
    """Coerce ints, floats and numeric strings; bools are not numbers here."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _to_json(value: Any) -> str:
    try:
        return json.dumps(value, default=str, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(value)


def _first_string(sources: tuple, keys: tuple) -> Optional[str]:
    for key in keys:
        for source in sources:
            value = _field(source, key)
            if isinstance(value, str) and value:
                return value
    return None


def _payload_of(err: BaseException) -> Any:
    """Structured payload carried by an exception without a message."""
    body = getattr(err, "body", None)
    if isinstance(body, Mapping):
        return body
    return {k: v for k, v in vars(err).items() if not k.startswith("_")}


def _message_from_payload(payload: Any) -> str:
    nested = _field(payload, "error")
    if _has_fields(nested):
        found = _first_string((nested, payload), _NESTED_MESSAGE_KEYS)
        return found if found is not None else _to_json(nested)
    found = _first_string((payload,), _FLAT_MESSAGE_KEYS)
    return found if found is not None else _to_json(payload)


def extract_error_message(err: Any) -> str:
    """Extract a human-readable message from an arbitrary error value.

    Priority: plain strings, exception messages, payloads with a nested
    ``error`` object, flat payloads, and finally ``str()`` coercion.
    """
    if err is None:
        return ""
    if isinstance(err, str):
        return err
    if isinstance(err, BaseException):
        message = getattr(err, "message", None)
        if isinstance(message, str) and message:
            return message
        text = str(err)
        if text:
            return text
        payload = _payload_of(err)
        return _message_from_payload(payload) if payload else type(err).__name__
    if isinstance(err, Mapping):
        return _message_from_payload(err)
    return str(err)


def _status_from(obj: Any) -> Optional[int]:
    for key in ("status", "status_code"):
        number = _to_number(_field(obj, key))
        if number is not None:
            return int(number)
    return None


def extract_status_code(err: Any) -> Optional[int]:
    """Extract an HTTP status from ``status``, ``error.status``, ``response.status_code``
    or "HTTP nnn" text."""
    if _has_fields(err):
        status = _status_from(err)
        if status is not None:
            return status
        for holder in (_field(err, "error"), _field(err, "response")):
            if _has_fields(holder):
                status = _status_from(holder)
                if status is not None:
                    return status

    match = _HTTP_STATUS_IN_MESSAGE.search(extract_error_message(err))
    if match:
        return int(match.group(1))
    return None


def is_retryable_status_code(code: int) -> bool:
    """429 and the transient 5xx family (500, 502, 503, 504)."""
    return code in RETRYABLE_STATUS_CODES


def is_rate_limit_message(message: str) -> bool:
    """Check a message against the core rate limit and overload signatures."""
    lowered = message.lower()
    return any(pattern.search(lowered) for pattern in _RATE_LIMIT_PATTERNS)


def is_retryable_error(err: Any) -> bool:
    """Check if error is a rate limit, overload, or temporary server failure."""
    status = extract_status_code(err)
    if status is not None and is_retryable_status_code(status):
        return True

    message = extract_error_message(err).lower()

    if is_rate_limit_message(message):
        return True
    if any(token in message for token in SDK_ERROR_TYPES):
        return True
    if any(phrase in message for phrase in CJK_RATE_LIMIT_PHRASES):
        return True
    if any(pattern.search(message) for pattern in _FORMATTED_PATTERNS):
        return True
    return any(pattern.search(message) for pattern in _HTTP_TEXT_PATTERNS)


def _seconds_to_ms(seconds: float) -> int:
    return max(0, int(round(seconds * 1000)))


def _retry_after_header(err: Any) -> Optional[float]:
    for holder in (err, _field(err, "response")):
        headers = _field(holder, "headers")
        if headers is None or not hasattr(headers, "get"):
            continue
        value = headers.get("retry-after") or headers.get("Retry-After")
        number = _to_number(value)
        if number is not None:
            return number
    return None


def get_retry_after_ms(err: Any) -> Optional[int]:
    """Provider-suggested delay in milliseconds, or None.

    ``retry_after`` values (on the error or its nested ``error``) and the
    ``Retry-After`` header are interpreted as seconds.
    """
    if _has_fields(err):
        for source in (err, _field(err, "error")):
            if not _has_fields(source):
                continue
            seconds = _to_number(_field(source, "retry_after"))
            if seconds is not None:
                return _seconds_to_ms(seconds)
        seconds = _retry_after_header(err)
        if seconds is not None:
            return _seconds_to_ms(seconds)

    message = extract_error_message(err)
    for pattern in _RETRY_AFTER_IN_MESSAGE:
        match = pattern.search(message)
        if match:
            return int(match.group(1)) * 1000
    return None


def classify_error(err: Any) -> ErrorClassification:
    """Classify a failed call for the retry loop.

    Args:
        err: Exception, payload mapping, string or any other error value

    Returns:
        ErrorClassification with retryability, log message and retry hint
    """
    return ErrorClassification(
        retryable=is_retryable_error(err),
        message=extract_error_message(err),
        retry_after_ms=get_retry_after_ms(err),
    )
