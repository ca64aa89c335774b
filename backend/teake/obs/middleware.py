"""Request instrumentation: request ids, access logs and Prometheus timings."""

from __future__ import annotations

import time
from uuid import uuid4

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from teake.obs import logging as obs_logging
from teake.obs import metrics

REQUEST_ID_HEADER = "X-Request-Id"


def _route_template(request: Request) -> str:
	# "/stories/{story_id}" rather than the concrete path keeps label cardinality bounded.
	route = request.scope.get("route")
	return getattr(route, "path", None) or request.url.path


class ObservabilityMiddleware(BaseHTTPMiddleware):
	"""Assign a request id, bind it for logging and record one access-log line per request.

	An incoming ``X-Request-Id`` is reused so ids can be correlated with the
	caller's logs; the id is echoed on every response, including error bodies.
	"""

	def __init__(self, app) -> None:
		super().__init__(app)
		self._logger = obs_logging.get_logger("teake.http")

	async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
		request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid4())
		request.state.request_id = request_id
		tokens = obs_logging.bind_context(
			request_id=request_id,
			route=request.url.path,
			ip=request.client.host if request.client else None,
		)
		start = time.perf_counter()
		status_code = 500
		try:
			response = await call_next(request)
			status_code = response.status_code
		except Exception:
			self._logger.exception("http_request_error", extra={"method": request.method})
			raise
		finally:
			elapsed = time.perf_counter() - start
			metrics.observe_request(_route_template(request), request.method, status_code, elapsed)
			self._logger.info(
				"http_request",
				extra={"status": status_code, "method": request.method, "latency_ms": round(elapsed * 1000, 3)},
			)
			obs_logging.reset_context(tokens)

		response.headers.setdefault(REQUEST_ID_HEADER, request_id)
		return response


def install(app) -> None:
	app.add_middleware(ObservabilityMiddleware)
