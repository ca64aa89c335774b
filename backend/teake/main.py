"""FastAPI application entrypoint."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from teake.api import admin, chat, guys, ops, stories
from teake.api.errors import install_error_handlers
from teake.infra import postgres
from teake.obs import init as obs_init
from teake.obs import logging as obs_logging
from teake.settings import settings


@asynccontextmanager
async def lifespan(app: FastAPI):
	await postgres.init_pool()
	obs_logging.get_logger("teake.app").info(
		"app_started",
		extra={"environment": settings.environment, "service": settings.service_name},
	)
	try:
		yield
	finally:
		await postgres.close_pool()


def create_app() -> FastAPI:
	app = FastAPI(title="TeaKE API", lifespan=lifespan)
	app.add_middleware(
		CORSMiddleware,
		allow_origins=list(settings.cors_allow_origins),
		allow_credentials=True,
		allow_methods=["*"],
		allow_headers=["*"],
		expose_headers=["X-Request-Id"],
	)
	obs_init(app)
	install_error_handlers(app)
	app.include_router(ops.router)
	app.include_router(stories.router)
	app.include_router(guys.router)
	app.include_router(chat.router)
	app.include_router(admin.router)
	return app


app = create_app()
