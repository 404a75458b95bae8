"""Exception types shared by the backend clients and scenario runners."""

from __future__ import annotations

from typing import Optional


class BackendUnreachable(RuntimeError):
    """Raised when a backend call fails or answers with a non-2xx status."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class FatalConfigurationError(RuntimeError):
    """Raised when the configuration makes a scenario impossible to run."""
