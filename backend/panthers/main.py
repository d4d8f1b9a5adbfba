"""FastAPI application entrypoint."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from panthers.api import (
	access,
	analysis,
	attendance,
	chats,
	grades,
	health,
	hooks,
	memberships,
	notifications,
	ops,
	schedules,
	teams,
	telemetry,
)
from panthers.api.errors import install_error_handlers
from panthers.hub import Hub
from panthers.obs import init as obs_init
from panthers.settings import settings


def _allow_origins() -> list[str]:
	origins = list(settings.cors_allow_origins)
	# Starlette disallows wildcard '*' with allow_credentials=True.
	if "*" in origins:
		origins = ["http://localhost:5173", "http://localhost:3000"] if settings.is_dev() else []
	return origins


def create_app(*, transport: Optional[httpx.AsyncBaseTransport] = None) -> FastAPI:
	@asynccontextmanager
	async def lifespan(app: FastAPI):
		hub = Hub.from_settings(transport=transport)
		app.state.hub = hub
		await hub.start()
		try:
			yield
		finally:
			await hub.close()

	app = FastAPI(title="Panthers Hub", lifespan=lifespan)
	install_error_handlers(app)
	app.add_middleware(
		CORSMiddleware,
		allow_origins=_allow_origins(),
		allow_credentials=True,
		allow_methods=["*"],
		allow_headers=["*"],
	)
	obs_init(app)

	for module in (access, attendance, memberships, grades, chats, schedules, teams, health, notifications, telemetry, analysis, hooks, ops):
		app.include_router(module.router)
	return app


app = create_app()
