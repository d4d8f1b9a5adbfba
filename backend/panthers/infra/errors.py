"""Typed errors for everything that comes back from the managed backend.

The kind of a failure is decided once, where the response is received, and
travels with the exception from then on. Callers branch on ``error.kind``
instead of re-reading message text.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Mapping, Optional

import httpx


class ErrorKind(str, enum.Enum):
	PERMISSION = "permission"
	NETWORK = "network"
	VALIDATION = "validation"
	NOT_FOUND = "not_found"
	UNKNOWN = "unknown"


# Postgres / PostgREST error codes
_PERMISSION_CODES = {"42501", "PGRST301", "PGRST302", "28000", "28P01"}
_NOT_FOUND_CODES = {"PGRST116", "PGRST202", "PGRST205", "42883", "42P01"}
_VALIDATION_PREFIXES = ("22", "23", "P0001", "PGRST1", "PGRST2")

_NETWORK_MARKERS = ("failed to fetch", "networkerror", "connection refused", "timed out")
_PERMISSION_MARKERS = ("permission denied", "unauthorized", "row-level security", "jwt")
_NOT_FOUND_MARKERS = ("not found",)


class BackendError(Exception):
	"""Failure reported by (or while reaching) the managed backend."""

	def __init__(
		self,
		kind: ErrorKind,
		detail: str,
		*,
		code: Optional[str] = None,
		status: Optional[int] = None,
		hint: Optional[str] = None,
	) -> None:
		super().__init__(detail)
		self.kind = ErrorKind(kind)
		self.detail = detail
		self.code = code
		self.status = status
		self.hint = hint

	def to_dict(self) -> dict[str, Any]:
		payload: dict[str, Any] = {"kind": self.kind.value, "detail": self.detail}
		if self.code:
			payload["code"] = self.code
		if self.hint:
			payload["hint"] = self.hint
		return payload

	def __repr__(self) -> str:
		return f"BackendError(kind={self.kind.value!r}, detail={self.detail!r}, code={self.code!r}, status={self.status!r})"


def _kind_from_code(code: str) -> Optional[ErrorKind]:
	if code in _PERMISSION_CODES:
		return ErrorKind.PERMISSION
	if code in _NOT_FOUND_CODES:
		return ErrorKind.NOT_FOUND
	if code.startswith(_VALIDATION_PREFIXES):
		return ErrorKind.VALIDATION
	return None


def _kind_from_status(status: int) -> Optional[ErrorKind]:
	if status in (401, 403):
		return ErrorKind.PERMISSION
	if status == 404:
		return ErrorKind.NOT_FOUND
	if status in (400, 409, 422):
		return ErrorKind.VALIDATION
	if status in (408, 425, 429, 502, 503, 504):
		return ErrorKind.NETWORK
	return None


def _kind_from_message(message: str) -> ErrorKind:
	lowered = message.lower()
	if any(marker in lowered for marker in _NETWORK_MARKERS):
		return ErrorKind.NETWORK
	if any(marker in lowered for marker in _PERMISSION_MARKERS):
		return ErrorKind.PERMISSION
	if any(marker in lowered for marker in _NOT_FOUND_MARKERS):
		return ErrorKind.NOT_FOUND
	return ErrorKind.UNKNOWN


def classify(
	*,
	status: Optional[int] = None,
	code: Optional[str] = None,
	message: str = "",
) -> ErrorKind:
	"""Pick the error kind from the most specific signal available.

	Order: backend error code, then HTTP status, then message text.
	"""
	if code:
		kind = _kind_from_code(str(code))
		if kind is not None:
			return kind
	if status is not None:
		kind = _kind_from_status(status)
		if kind is not None:
			return kind
	return _kind_from_message(message)


def from_response(response: httpx.Response) -> BackendError:
	body: Mapping[str, Any] = {}
	try:
		parsed = response.json()
		if isinstance(parsed, Mapping):
			body = parsed
	except ValueError:
		pass
	message = str(body.get("message") or body.get("msg") or body.get("error_description") or body.get("error") or response.text or response.reason_phrase)
	code = body.get("code")
	kind = classify(status=response.status_code, code=str(code) if code else None, message=message)
	return BackendError(
		kind,
		message,
		code=str(code) if code else None,
		status=response.status_code,
		hint=body.get("hint") or body.get("details"),
	)


def from_transport(exc: httpx.TransportError) -> BackendError:
	return BackendError(ErrorKind.NETWORK, f"Failed to fetch: {exc.__class__.__name__}: {exc}")


def is_retryable(error: BaseException) -> bool:
	"""Default retry predicate: transient failures only."""
	if isinstance(error, BackendError):
		return error.kind in (ErrorKind.NETWORK, ErrorKind.UNKNOWN)
	if isinstance(error, httpx.TransportError):
		return True
	return False


@dataclass(frozen=True)
class ErrorPresentation:
	kind: ErrorKind
	headline: str
	message: str
	display: str  # toast | card | empty | blocking


_PRESENTATIONS = {
	ErrorKind.NETWORK: ("Connection Issue", "Unable to connect to the server. Please check your internet connection.", "toast"),
	ErrorKind.PERMISSION: ("Access Denied", "You do not have permission to view this data. Contact your administrator.", "blocking"),
	ErrorKind.NOT_FOUND: ("Data Not Found", "The requested information could not be found.", "empty"),
	ErrorKind.VALIDATION: ("Invalid Request", "", "toast"),
	ErrorKind.UNKNOWN: ("Something Went Wrong", "An unexpected error occurred. Please try again.", "card"),
}


def describe(error: BaseException) -> ErrorPresentation:
	"""UI treatment for an error; validation details are passed through verbatim."""
	kind = error.kind if isinstance(error, BackendError) else ErrorKind.UNKNOWN
	headline, message, display = _PRESENTATIONS[kind]
	if kind is ErrorKind.VALIDATION:
		message = str(error)
	return ErrorPresentation(kind=kind, headline=headline, message=message, display=display)
