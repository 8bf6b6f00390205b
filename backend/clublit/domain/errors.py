"""Typed errors shared by the domain services.

Every error carries a machine-readable ``code`` and the HTTP status the API
layer maps it to. Transient store failures keep their cause out of ``detail``.
"""

from __future__ import annotations


class ClubLitError(RuntimeError):
	status_code = 400

	def __init__(self, code: str, *, status_code: int | None = None, message: str | None = None) -> None:
		super().__init__(message or code)
		self.code = code
		if status_code is not None:
			self.status_code = status_code
		self.detail = message or code


class ValidationError(ClubLitError):
	status_code = 400


class NotFoundError(ClubLitError):
	status_code = 404


class PermissionDenied(ClubLitError):
	status_code = 403


class ConflictError(ClubLitError):
	status_code = 409


class RateLimited(ClubLitError):
	status_code = 429


class TransientStoreError(ClubLitError):
	status_code = 503

	def __init__(self, store: str) -> None:
		super().__init__("try_again")
		self.store = store
