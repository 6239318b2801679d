"""
Error taxonomy shared by the reconciliation engine and its collaborators
"""
import re
from typing import Optional


class ReconcilerError(Exception):
    """Base class for all engine errors"""


class NotFoundError(ReconcilerError):
    """A record or external work does not exist"""

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message)
        self.key = key


class VersionConflictError(ReconcilerError):
    """Optimistic concurrency failure: the record changed since it was read"""

    def __init__(self, key: str, version: int):
        super().__init__(f"Version conflict on {key} (sent version {version})")
        self.key = key
        self.version = version


class NetworkError(ReconcilerError):
    """An external call failed at the transport or HTTP level"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitedError(NetworkError):
    """An external service refused the call because of rate limiting"""

    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message, status_code=429)
        self.retry_after = retry_after


class ParseError(ReconcilerError):
    """A structured (JSON) response could not be parsed

    The raw response text is kept so the recovery agent can salvage fields.
    """

    def __init__(self, message: str, raw_text: str = ""):
        super().__init__(message)
        self.raw_text = raw_text


_SECRET_PATTERNS = [
    (re.compile(r"Zotero-API-Key[:\s]*[^\s\"']+", re.IGNORECASE), "Zotero-API-Key: ***"),
    (re.compile(r"key=([^&\s\"']+)", re.IGNORECASE), "key=***"),
    (re.compile(r"Bearer\s+[^\s\"']+", re.IGNORECASE), "Bearer ***"),
]


def redact_secrets(text: str) -> str:
    """Strip API keys from error bodies before they are logged or surfaced"""
    if not text:
        return ""
    for pattern, replacement in _SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    return text
