"""Contadores del poller expuestos en ``status()`` y en el log de stop."""

from __future__ import annotations


class PollerStats:
    """Estadísticas del poller."""

    def __init__(self):
        self.polls = 0
        self.succeeded = 0
        self.failed = 0
        self.discarded = 0
        self.last_success_at: int = 0
        self.last_error: str | None = None

    def __str__(self) -> str:
        return (
            f"Stats: polls={self.polls} succeeded={self.succeeded} "
            f"failed={self.failed} discarded={self.discarded}"
        )

    def to_dict(self) -> dict:
        return {
            "polls": self.polls,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "discarded": self.discarded,
            "last_success_at": self.last_success_at,
            "last_error": self.last_error,
        }
