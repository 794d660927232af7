from __future__ import annotations

from typing import Any


class AppError(RuntimeError):
  status_code = 500
  code = "error"

  def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
    super().__init__(message)
    self.message = message
    self.details = details or {}


class InvalidIdentifier(AppError):
  status_code = 400
  code = "invalid_identifier"


class ValidationFailed(AppError):
  status_code = 400
  code = "validation_error"


class Unauthenticated(AppError):
  status_code = 401
  code = "unauthenticated"


class Forbidden(AppError):
  status_code = 403
  code = "forbidden"


class NotFound(AppError):
  status_code = 404
  code = "not_found"


class DuplicateMember(AppError):
  status_code = 409
  code = "duplicate_member"


class UpstreamFailure(AppError):
  """An LLM, embedding or vector index call failed."""

  status_code = 502
  code = "upstream_failure"
