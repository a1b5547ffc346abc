from __future__ import annotations


class InvalidConfiguration(ValueError):
    """A drill session cannot start with the requested configuration."""


class VoiceBackendError(RuntimeError):
    """Speech synthesis or recognition backend failed (permission, engine, device busy).

    Never fatal for a session: the affected task is resolved as a timeout.
    """

    def __init__(self, message: str, *, backend: str = "") -> None:
        super().__init__(message)
        self.backend = backend
