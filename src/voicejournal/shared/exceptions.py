"""
Shared exceptions.

Error taxonomy used across the service:
- AuthenticationError: bad or missing webhook signature (rejected before mutation)
- ValidationError: malformed, user-correctable input (rejected before mutation)
- NotFoundError: a required record does not exist (surfaced as a skip)
- UpstreamError: an external store or trigger-service call failed (propagated)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


@dataclass(eq=False)
class AppError(Exception):
    message: str = "Application error"
    details: Optional[dict[str, Any]] = None

    code = "APP_ERROR"

    def __str__(self) -> str:
        return self.message


class AuthenticationError(AppError):
    code = "AUTHENTICATION_FAILED"


class ValidationError(AppError):
    code = "VALIDATION_ERROR"


class NotFoundError(AppError):
    code = "NOT_FOUND"


class UpstreamError(AppError):
    code = "UPSTREAM_ERROR"
