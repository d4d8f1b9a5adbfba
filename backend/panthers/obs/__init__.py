"""Observability package bootstrap."""

from __future__ import annotations

from fastapi import FastAPI

from panthers.obs import logging as obs_logging
from panthers.obs import middleware
from panthers.settings import settings

_initialised = False


def init(app: FastAPI) -> None:
	global _initialised
	if not settings.obs_enabled:
		return
	if not _initialised:
		obs_logging.configure_logging()
		_initialised = True
	middleware.install(app)


__all__ = ["init"]
