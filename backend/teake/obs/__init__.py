"""Observability bootstrap: JSON logging and request instrumentation."""

from __future__ import annotations

from fastapi import FastAPI

from teake.obs import logging as obs_logging
from teake.obs import middleware
from teake.settings import settings


def init(app: FastAPI) -> None:
	"""Install observability on ``app``; a no-op when disabled or already done."""
	if not settings.obs_enabled or getattr(app.state, "obs_initialised", False):
		return
	obs_logging.configure_logging()
	middleware.install(app)
	app.state.obs_initialised = True


__all__ = ["init"]
