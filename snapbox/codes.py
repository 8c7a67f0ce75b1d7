"""
Short-lived, single-use verification codes keyed by email.

Supports an in-memory store for single-process runs/tests and a Redis-backed
implementation when several workers must share codes.
"""

from __future__ import annotations

import enum
import hmac
import secrets
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol

import redis

CODE_MIN = 100000
CODE_MAX = 999999


class VerifyResult(enum.Enum):
    OK = "ok"
    MISSING = "missing"
    MISMATCH = "mismatch"


def generate_code() -> str:
    """Six-digit numeric code, never starting with zero."""
    return str(CODE_MIN + secrets.randbelow(CODE_MAX - CODE_MIN + 1))


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class VerificationCodeStore(Protocol):
    def issue(self, email: str) -> str:
        ...

    def verify(self, email: str, code: str) -> VerifyResult:
        ...

    def discard(self, email: str) -> None:
        ...

    def purge_expired(self) -> int:
        ...


@dataclass
class _Entry:
    code: str
    expires_at: float


@dataclass
class InMemoryCodeStore:
    """Dict-backed store; expired entries are dropped on access or purge."""

    ttl_seconds: int = 300
    clock: Callable[[], float] = time.monotonic
    entries: dict[str, _Entry] = field(default_factory=dict)

    def __post_init__(self):
        self._lock = threading.Lock()

    def issue(self, email: str) -> str:
        code = generate_code()
        with self._lock:
            self.entries[normalize_email(email)] = _Entry(
                code=code, expires_at=self.clock() + self.ttl_seconds
            )
        return code

    def _live_entry(self, key: str) -> Optional[_Entry]:
        entry = self.entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self.clock():
            del self.entries[key]
            return None
        return entry

    def verify(self, email: str, code: str) -> VerifyResult:
        key = normalize_email(email)
        with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                return VerifyResult.MISSING
            if not hmac.compare_digest(entry.code, str(code)):
                return VerifyResult.MISMATCH
            del self.entries[key]
        return VerifyResult.OK

    def discard(self, email: str) -> None:
        with self._lock:
            self.entries.pop(normalize_email(email), None)

    def purge_expired(self) -> int:
        now = self.clock()
        with self._lock:
            expired = [k for k, e in self.entries.items() if e.expires_at <= now]
            for key in expired:
                del self.entries[key]
        return len(expired)

    def reset(self) -> None:
        with self._lock:
            self.entries.clear()


# Compare and delete in one step so a code issued meanwhile is never removed.
# Returns 1 when consumed, -1 on mismatch, 0 when absent.
CONSUME_SCRIPT = """
local stored = redis.call('GET', KEYS[1])
if not stored then
  return 0
end
if stored ~= ARGV[1] then
  return -1
end
redis.call('DEL', KEYS[1])
return 1
"""


@dataclass
class RedisCodeStore:
    """Redis-backed store relying on key TTLs for expiry."""

    url: str
    ttl_seconds: int = 300
    key_prefix: str = "snapbox:code:"

    def __post_init__(self):
        self.client = redis.Redis.from_url(self.url, decode_responses=True)
        self._consume = self.client.register_script(CONSUME_SCRIPT)

    def _key(self, email: str) -> str:
        return f"{self.key_prefix}{normalize_email(email)}"

    def issue(self, email: str) -> str:
        code = generate_code()
        self.client.set(self._key(email), code, ex=self.ttl_seconds)
        return code

    def verify(self, email: str, code: str) -> VerifyResult:
        result = int(self._consume(keys=[self._key(email)], args=[str(code)]))
        if result == 1:
            return VerifyResult.OK
        if result == -1:
            return VerifyResult.MISMATCH
        return VerifyResult.MISSING

    def discard(self, email: str) -> None:
        self.client.delete(self._key(email))

    def purge_expired(self) -> int:
        return 0
