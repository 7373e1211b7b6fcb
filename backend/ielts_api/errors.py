from __future__ import annotations
from typing import Any, Dict, List, Optional


class AppError(Exception):
	"""Base for errors rendered once into the response envelope."""

	status_code = 500
	kind = "error"

	def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None, *, kind: Optional[str] = None) -> None:
		super().__init__(message)
		self.message = message
		if kind is not None:
			self.kind = kind
		self._errors = errors

	@property
	def errors(self) -> List[Dict[str, Any]]:
		if self._errors:
			return self._errors
		return [{"code": self.kind, "message": self.message}]


class ValidationError(AppError):
	status_code = 400
	kind = "validation_error"


class ConflictError(ValidationError):
	status_code = 409
	kind = "conflict"


class AuthenticationError(AppError):
	status_code = 401
	kind = "invalid_credentials"


class AuthorizationError(AppError):
	status_code = 403
	kind = "forbidden"


class NotFoundError(AppError):
	status_code = 404
	kind = "not_found"


class GenerationFormatError(AppError):
	"""The model answered, but not in the shape that was asked for."""

	status_code = 502
	kind = "generation_format"


class InfrastructureError(AppError):
	status_code = 500
	kind = "infrastructure"


class GenerationUnavailable(InfrastructureError):
	kind = "generation_unavailable"


class InvalidTransition(ValueError):
	pass
