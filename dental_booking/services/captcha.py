"""Server-issued challenge codes for the guest booking channel."""

from __future__ import annotations

import secrets
import string
import threading
import time
from typing import Callable

from dental_booking.core.errors import InvalidCaptcha

CAPTCHA_LENGTH = 6
CAPTCHA_ALPHABET = string.ascii_uppercase + string.digits


def normalize(value: str | None) -> str:
    return (value or "").strip().lower()


class CaptchaStore:
    """Issued codes with an expiry; each code verifies at most once."""

    def __init__(self, *, ttl_seconds: int, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._issued: dict[str, float] = {}
        self._lock = threading.Lock()

    def issue(self) -> str:
        value = "".join(secrets.choice(CAPTCHA_ALPHABET) for _ in range(CAPTCHA_LENGTH))
        with self._lock:
            self._purge(self._clock())
            self._issued[normalize(value)] = self._clock() + self.ttl_seconds
        return value

    def _purge(self, now: float) -> None:
        expired = [key for key, expires_at in self._issued.items() if expires_at <= now]
        for key in expired:
            del self._issued[key]

    def verify(self, issued_value: str | None, user_input: str | None) -> None:
        """Raise InvalidCaptcha unless ``user_input`` matches a live issued code.

        The comparison ignores case. A successful match consumes the code.
        """
        answer = normalize(user_input)
        expected = normalize(issued_value)
        if len(answer) != CAPTCHA_LENGTH:
            raise InvalidCaptcha(
                f"The verification code must be exactly {CAPTCHA_LENGTH} characters.",
                fields={"captcha_input": "Enter the 6-character code."},
            )
        if answer != expected:
            raise InvalidCaptcha(fields={"captcha_input": "The code does not match."})
        with self._lock:
            expires_at = self._issued.get(expected)
            if expires_at is None or expires_at <= self._clock():
                self._issued.pop(expected, None)
                raise InvalidCaptcha(
                    "The verification code has expired. Please request a new one.",
                    fields={"captcha_input": "Request a new code."},
                )
            del self._issued[expected]

