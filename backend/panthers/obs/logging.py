"""JSON logging with request-scoped context for the hub."""

from __future__ import annotations

import json
import logging
import random
from contextlib import contextmanager
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Mapping, Optional

from panthers.settings import settings

_ROOT_LOGGER = "panthers"

# request_id, route, user_id and the backend procedure in flight
_CONTEXT: ContextVar[Mapping[str, str]] = ContextVar("panthers_log_context", default={})

# Player health and contact fields never reach the log stream.
_REDACT = ("token", "secret", "authorization", "apikey", "api_key", "password", "email", "phone", "notes", "symptoms")

_CLIP_CHARS = 256
_CLIP_ITEMS = 10

_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


def bind_context(**fields: Optional[str]) -> Token:
	"""Layer ``fields`` over the current context; ``None`` values are skipped."""
	merged = dict(_CONTEXT.get())
	merged.update({key: value for key, value in fields.items() if value is not None})
	return _CONTEXT.set(merged)


def reset_context(token: Token) -> None:
	_CONTEXT.reset(token)


@contextmanager
def log_context(**fields: Optional[str]) -> Iterator[None]:
	token = bind_context(**fields)
	try:
		yield
	finally:
		reset_context(token)


def current_context() -> Dict[str, str]:
	return dict(_CONTEXT.get())


def current_request_id(default: str = "unknown") -> str:
	return _CONTEXT.get().get("request_id") or default


def _clip(value: Any) -> Any:
	if isinstance(value, str):
		return value if len(value) <= _CLIP_CHARS else value[:_CLIP_CHARS] + "…"
	if isinstance(value, Mapping):
		items = list(value.items())
		clipped = {str(k): _scrub(str(k), v) for k, v in items[:_CLIP_ITEMS]}
		if len(items) > _CLIP_ITEMS:
			clipped["…"] = f"+{len(items) - _CLIP_ITEMS} keys"
		return clipped
	if isinstance(value, (list, tuple, set, frozenset)):
		values = list(value)
		clipped_list = [_clip(item) for item in values[:_CLIP_ITEMS]]
		if len(values) > _CLIP_ITEMS:
			clipped_list.append("…")
		return clipped_list
	return value


def _scrub(key: str, value: Any) -> Any:
	name = key.lower()
	if any(marker in name for marker in _REDACT):
		return "[redacted]"
	return _clip(value)


class JSONLogFormatter(logging.Formatter):
	"""One JSON object per record: service identity, bound context, then extras."""

	def format(self, record: logging.LogRecord) -> str:  # noqa: A003
		entry: Dict[str, Any] = {
			"ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
			"level": record.levelname.lower(),
			"event": record.getMessage(),
			"logger": record.name,
			"service": settings.service_name,
			"env": settings.environment,
			"commit": settings.git_commit,
		}
		entry.update(_CONTEXT.get())
		if record.exc_info:
			entry["exc_info"] = self.formatException(record.exc_info)
		for key, value in vars(record).items():
			if key not in _RECORD_ATTRS and not key.startswith("_"):
				entry[key] = _scrub(key, value)
		return json.dumps(entry, separators=(",", ":"), default=str)


class InfoSamplingFilter(logging.Filter):
	"""Pass a fraction of INFO records; everything else always passes."""

	def __init__(self, rate: float) -> None:
		super().__init__()
		self.rate = min(1.0, max(0.0, rate))

	def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
		if record.levelno != logging.INFO or self.rate >= 1.0:
			return True
		return random.random() < self.rate


def configure_logging(level: Optional[str] = None) -> logging.Logger:
	root = logging.getLogger()
	root.handlers.clear()
	handler = logging.StreamHandler()
	handler.setFormatter(JSONLogFormatter())
	handler.addFilter(InfoSamplingFilter(settings.obs_log_sampling_rate_info))
	root.addHandler(handler)
	root.setLevel(level or settings.obs_log_level)
	return logging.getLogger(_ROOT_LOGGER)


def get_logger(name: Optional[str] = None) -> logging.Logger:
	return logging.getLogger(name or _ROOT_LOGGER)
