"""HTTP client for the managed backend (PostgREST tables, procedures, functions).

One ``httpx.AsyncClient`` is shared per process. Request-scoped clients created
with :meth:`BackendClient.with_token` reuse it and only swap the bearer token, so
row-level security is evaluated as the calling user.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Sequence

import httpx

from panthers.infra import errors
from panthers.infra.errors import BackendError, ErrorKind
from panthers.obs import metrics as obs_metrics
from panthers.settings import settings

LOGGER = logging.getLogger(__name__)

_FILTER_OPERATORS = frozenset({"eq", "neq", "gt", "gte", "lt", "lte", "like", "ilike", "is", "in", "cs", "ov"})
_RESERVED = frozenset(',.:()"\\ ')


@dataclass(frozen=True)
class Op:
	"""A PostgREST operator built by service code, e.g. ``Op("lt", cursor)``.

	Plain values passed as filters are always compared with ``eq``; only an
	``Op`` can select another operator. A list of ``Op`` applies each of them
	to the same column.
	"""

	operator: str
	value: Any

	def __post_init__(self) -> None:
		if self.operator not in _FILTER_OPERATORS:
			raise ValueError(f"unsupported filter operator: {self.operator}")


def _format_scalar(value: Any) -> str:
	if value is None:
		return "null"
	if isinstance(value, bool):
		return "true" if value else "false"
	return str(value)


def _list_member(value: Any) -> str:
	text = _format_scalar(value)
	if text and not _RESERVED.intersection(text):
		return text
	escaped = text.replace("\\", "\\\\").replace('"', '\\"')
	return f'"{escaped}"'


def _in_list(values: Iterable[Any]) -> str:
	return "(" + ",".join(_list_member(item) for item in values) + ")"


def encode_filter(value: Any) -> str:
	"""Translate a Python filter value into a PostgREST operator expression."""
	if isinstance(value, Op):
		if value.operator == "in":
			return f"in.{_in_list(value.value)}"
		if value.operator in ("cs", "ov"):
			members = ",".join(_list_member(item) for item in value.value)
			return f"{value.operator}.{{{members}}}"
		if value.operator == "is" and value.value is None:
			return "is.null"
		return f"{value.operator}.{_format_scalar(value.value)}"
	if value is None:
		return "is.null"
	if isinstance(value, (list, tuple, set, frozenset)):
		return f"in.{_in_list(value)}"
	return f"eq.{_format_scalar(value)}"


def _is_op_list(value: Any) -> bool:
	return isinstance(value, (list, tuple)) and bool(value) and all(isinstance(item, Op) for item in value)


def filter_params(filters: Optional[Mapping[str, Any]]) -> list[tuple[str, str]]:
	params: list[tuple[str, str]] = []
	for column, value in (filters or {}).items():
		if _is_op_list(value):
			params.extend((column, encode_filter(op)) for op in value)
		else:
			params.append((column, encode_filter(value)))
	return params


def build_params(
	*,
	columns: str = "*",
	filters: Optional[Mapping[str, Any]] = None,
	order: Optional[str] = None,
	limit: Optional[int] = None,
) -> list[tuple[str, str]]:
	params: list[tuple[str, str]] = [("select", columns)]
	params.extend(filter_params(filters))
	if order:
		params.append(("order", order))
	if limit is not None:
		params.append(("limit", str(int(limit))))
	return params


class BackendClient:
	"""Thin async wrapper over the backend's REST surface."""

	def __init__(
		self,
		http: httpx.AsyncClient,
		*,
		api_key: str,
		access_token: Optional[str] = None,
		subject: Optional[str] = None,
	) -> None:
		self._http = http
		self._api_key = api_key
		self._access_token = access_token
		self._subject = subject

	@classmethod
	def from_settings(cls, *, transport: Optional[httpx.AsyncBaseTransport] = None) -> "BackendClient":
		http = httpx.AsyncClient(
			base_url=settings.backend_url,
			timeout=settings.backend_timeout_seconds,
			transport=transport,
		)
		return cls(http, api_key=settings.backend_anon_key)

	def with_token(self, access_token: Optional[str], *, subject: Optional[str] = None) -> "BackendClient":
		return BackendClient(self._http, api_key=self._api_key, access_token=access_token, subject=subject)

	def with_api_key(self, api_key: str) -> "BackendClient":
		return BackendClient(self._http, api_key=api_key)

	@property
	def cache_scope(self) -> str:
		"""Whose row-level-security view this client reads; prefixes per-caller cache keys."""
		if self._subject:
			return f"user:{self._subject}"
		credential = self._access_token or self._api_key
		return "key:" + hashlib.sha256(credential.encode("utf-8")).hexdigest()[:16]

	async def aclose(self) -> None:
		await self._http.aclose()

	def _headers(self, extra: Optional[Mapping[str, str]] = None) -> dict[str, str]:
		headers = {
			"apikey": self._api_key,
			"Authorization": f"Bearer {self._access_token or self._api_key}",
			"Content-Type": "application/json",
			"Accept": "application/json",
		}
		if extra:
			headers.update(extra)
		return headers

	async def _request(
		self,
		method: str,
		path: str,
		*,
		params: Optional[Sequence[tuple[str, str]]] = None,
		json: Any = None,
		headers: Optional[Mapping[str, str]] = None,
	) -> Any:
		try:
			response = await self._http.request(
				method,
				path,
				params=params,
				json=json,
				headers=self._headers(headers),
			)
		except httpx.TransportError as exc:
			error = errors.from_transport(exc)
			obs_metrics.BACKEND_ERRORS.labels(kind=error.kind.value).inc()
			LOGGER.warning("backend_transport_error", extra={"method": method, "path": path, "kind": error.kind.value})
			raise error from exc
		if response.is_error:
			error = errors.from_response(response)
			obs_metrics.BACKEND_ERRORS.labels(kind=error.kind.value).inc()
			LOGGER.info(
				"backend_error_response",
				extra={"method": method, "path": path, "status": response.status_code, "kind": error.kind.value, "code": error.code},
			)
			raise error
		if response.status_code == 204 or not response.content:
			return None
		return response.json()

	async def rpc(self, name: str, params: Optional[Mapping[str, Any]] = None) -> Any:
		return await self._request("POST", f"/rest/v1/rpc/{name}", json=dict(params or {}))

	async def select(
		self,
		table: str,
		*,
		columns: str = "*",
		filters: Optional[Mapping[str, Any]] = None,
		order: Optional[str] = None,
		limit: Optional[int] = None,
		single: bool = False,
	) -> Any:
		params = build_params(columns=columns, filters=filters, order=order, limit=limit)
		rows = await self._request("GET", f"/rest/v1/{table}", params=params)
		rows = rows or []
		if single:
			if not rows:
				raise BackendError(ErrorKind.NOT_FOUND, f"{table} row not found", code="PGRST116", status=406)
			return rows[0]
		return rows

	async def maybe_single(self, table: str, *, columns: str = "*", filters: Optional[Mapping[str, Any]] = None) -> Optional[dict]:
		rows = await self.select(table, columns=columns, filters=filters, limit=1)
		return rows[0] if rows else None

	async def insert(self, table: str, rows: Mapping[str, Any] | Iterable[Mapping[str, Any]], *, returning: bool = True) -> list[dict]:
		payload = [dict(rows)] if isinstance(rows, Mapping) else [dict(row) for row in rows]
		prefer = "return=representation" if returning else "return=minimal"
		result = await self._request("POST", f"/rest/v1/{table}", json=payload, headers={"Prefer": prefer})
		return list(result or [])

	async def update(self, table: str, values: Mapping[str, Any], *, filters: Mapping[str, Any]) -> list[dict]:
		if not filters:
			raise BackendError(ErrorKind.VALIDATION, "update without filters is not allowed")
		params = filter_params(filters)
		result = await self._request(
			"PATCH",
			f"/rest/v1/{table}",
			params=params,
			json=dict(values),
			headers={"Prefer": "return=representation"},
		)
		return list(result or [])

	async def delete(self, table: str, *, filters: Mapping[str, Any]) -> None:
		if not filters:
			raise BackendError(ErrorKind.VALIDATION, "delete without filters is not allowed")
		params = filter_params(filters)
		await self._request("DELETE", f"/rest/v1/{table}", params=params)

	async def invoke_function(self, name: str, body: Optional[Mapping[str, Any]] = None) -> Any:
		return await self._request("POST", f"/functions/v1/{name}", json=dict(body or {}))
