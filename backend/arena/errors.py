from __future__ import annotations


class ArenaError(Exception):
    """
    Base for every error surfaced to callers.
    `kind` is machine readable, the message is safe to show to users.
    """
    kind = "internal"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"detail": self.message, "kind": self.kind}


# ---------- validation ----------

class InvalidInput(ArenaError):
    kind = "invalid-argument"
    status_code = 422


class NotFound(ArenaError):
    kind = "not-found"
    status_code = 404


# ---------- authorization ----------

class NotEligible(ArenaError):
    kind = "not-eligible"
    status_code = 403


class NotRegistered(ArenaError):
    kind = "not-registered"
    status_code = 403


# ---------- state ----------

class AlreadyRegistered(ArenaError):
    kind = "already-registered"
    status_code = 409


class AlreadySolved(ArenaError):
    kind = "already-solved"
    status_code = 409


class ContestNotActive(ArenaError):
    kind = "contest-not-active"
    status_code = 409


class ContestNotLive(ArenaError):
    kind = "contest-not-live"
    status_code = 409


class RegistrationClosed(ArenaError):
    kind = "deadline-passed"
    status_code = 409


# ---------- rate / capacity ----------

class RateLimited(ArenaError):
    kind = "rate-limited"
    status_code = 429

    def __init__(self, message: str, retry_after_seconds: int):
        super().__init__(message)
        self.retry_after_seconds = int(retry_after_seconds)

    def to_dict(self) -> dict:
        return {**super().to_dict(), "retry_after_seconds": self.retry_after_seconds}


class DailyLimitReached(ArenaError):
    kind = "daily-limit"
    status_code = 429


class ContestFull(ArenaError):
    kind = "full"
    status_code = 409


# ---------- integrity ----------

class IntegrityViolation(ArenaError):
    """Implausible timing. Always flagged for review before being raised."""
    kind = "integrity-violation"
    status_code = 400
