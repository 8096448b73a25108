"""Error taxonomy & redaction.

Two families of failures exist in IssueCadence:

* Catalog lookups (unknown workflow state / team / project / label). These
  are configuration errors: they abort the single sweep or reconcile call
  that referenced the name and nothing else.
* Remote operation failures (create/update reported ``success: false`` or
  the tracker call raised). These never propagate; they are folded into a
  per-item outcome via :func:`failure_reason`.

Public API:
- classify_error(exc) -> ErrorInfo
- failure_reason(exc) -> str
- redact(text) -> str
"""
from __future__ import annotations

import re
from dataclasses import dataclass

_SENSITIVE_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"lin_api_[A-Za-z0-9]{20,}"),  # Linear personal API keys
    re.compile(r"lin_oauth_[A-Za-z0-9]{20,}"),  # Linear OAuth access tokens
    re.compile(r"(?i)(authorization['\"]?\s*[:=]\s*['\"]?)(bearer\s+)?[A-Za-z0-9_\-\.]{16,}"),
]

_REDACTION_PLACEHOLDER = "<redacted>"


class CatalogLookupError(LookupError):
    """A name could not be resolved in one of the tracker catalogs."""

    kind = "entry"

    def __init__(self, name: str, known: list[str] | None = None):
        self.name = name
        self.known = sorted(known or [])
        super().__init__(name)

    def __str__(self) -> str:
        hint = f" (known: {', '.join(self.known)})" if self.known else ""
        return f"Unknown {self.kind} {self.name!r}{hint}"


class UnknownStateError(CatalogLookupError):
    kind = "workflow state"


class UnknownTeamError(CatalogLookupError):
    kind = "team"


class UnknownProjectError(CatalogLookupError):
    kind = "project"


class UnknownLabelError(CatalogLookupError):
    kind = "label"


class RemoteOperationFailed(RuntimeError):
    """A tracker mutation reported failure.

    Never raised past the sweeper / reconciler; kept as a type so callers
    can classify and report it uniformly.
    """


@dataclass
class ErrorInfo:
    category: str
    message: str
    original_type: str


def redact(text: str) -> str:
    """Redact API keys and authorization headers in arbitrary text."""
    if not text:
        return text
    redacted = text
    for pat in _SENSITIVE_PATTERNS:
        if pat.groups:
            redacted = pat.sub(lambda m: m.group(1) + _REDACTION_PLACEHOLDER, redacted)
        else:
            redacted = pat.sub(_REDACTION_PLACEHOLDER, redacted)
    return redacted


def classify_error(exc: BaseException) -> ErrorInfo:
    """Best-effort classification of an exception.

    - Linear rate limiting ('ratelimited', 'rate limit') -> 'linear.rate_limit'
    - Authentication failures -> 'linear.auth'
    - Network-y keywords -> 'network'
    - YAML / parse errors -> 'parse'
    - Fallback -> 'generic'
    """
    msg = str(exc) if exc else ""
    low = msg.lower()
    name = exc.__class__.__name__

    if "ratelimited" in low or "rate limit" in low:
        return ErrorInfo("linear.rate_limit", redact(msg), name)
    if "authentication" in low or "unauthorized" in low or " 401" in low:
        return ErrorInfo("linear.auth", redact(msg), name)
    if any(k in low for k in ("timeout", "timed out", "connection reset", "temporarily unavailable")):
        return ErrorInfo("network", redact(msg), name)
    if isinstance(exc, ConnectionError):
        return ErrorInfo("network", redact(msg), name)
    if any(k in low for k in ("yaml", "scannererror", "parsererror")):
        return ErrorInfo("parse", redact(msg), name)
    return ErrorInfo("generic", redact(msg), name)


def failure_reason(exc: BaseException) -> str:
    """Outcome reason for a failed mutation: the bare message for reported
    failures, ``category: message`` for anything that raised."""
    if isinstance(exc, RemoteOperationFailed):
        return redact(str(exc))
    info = classify_error(exc)
    return f"{info.category}: {info.message}"


__all__ = [
    "CatalogLookupError",
    "UnknownStateError",
    "UnknownTeamError",
    "UnknownProjectError",
    "UnknownLabelError",
    "RemoteOperationFailed",
    "ErrorInfo",
    "classify_error",
    "failure_reason",
    "redact",
]
