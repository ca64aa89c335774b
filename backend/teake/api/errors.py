"""Global error handlers mapping domain failures onto HTTP responses.

Every error body has the shape ``{"success": false, "error": ..., "request_id": ...}``
and carries ``field`` when a specific input was at fault.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from teake.api.request_id import get_request_id
from teake.domain.common.errors import ErrorKind, RepositoryError
from teake.domain.identity.policy import IdentityPolicyError
from teake.settings import settings

STATUS_BY_KIND: Dict[ErrorKind, int] = {
	ErrorKind.VALIDATION: 400,
	ErrorKind.NOT_FOUND: 404,
	ErrorKind.DUPLICATE: 409,
	ErrorKind.FOREIGN_KEY: 409,
}


def status_for(error: RepositoryError) -> int:
	return STATUS_BY_KIND.get(error.kind, 500)


def _body(request: Request, message: str, **extra: Any) -> Dict[str, Any]:
	payload: Dict[str, Any] = {"success": False, "error": message}
	payload.update({key: value for key, value in extra.items() if value is not None})
	payload["request_id"] = get_request_id(request)
	return payload


def install_error_handlers(app: FastAPI) -> None:
	@app.exception_handler(RepositoryError)
	async def repository_exc_handler(request: Request, exc: RepositoryError):  # type: ignore[override]
		status_code = status_for(exc)
		message = exc.message
		debug = None
		if status_code >= 500:
			# Internal detail only leaves the process in development.
			if settings.is_dev():
				debug = {"kind": exc.kind.value, "context": exc.context, "code": exc.code, "cause": repr(exc.cause)}
			else:
				message = "Internal server error"
		return JSONResponse(
			status_code=status_code,
			content=_body(request, message, field=exc.field, kind=exc.kind.value, debug=debug),
		)

	@app.exception_handler(IdentityPolicyError)
	async def policy_exc_handler(request: Request, exc: IdentityPolicyError):  # type: ignore[override]
		return JSONResponse(status_code=403, content=_body(request, exc.reason))

	@app.exception_handler(StarletteHTTPException)
	async def http_exc_handler(request: Request, exc: StarletteHTTPException):  # type: ignore[override]
		return JSONResponse(
			status_code=exc.status_code,
			content=_body(request, str(exc.detail)),
			headers=getattr(exc, "headers", None),
		)

	@app.exception_handler(RequestValidationError)
	async def validation_exc_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
		errors = exc.errors()
		field = None
		if errors:
			location = [str(part) for part in errors[0].get("loc", ()) if part not in ("body", "query", "path")]
			field = ".".join(location) or None
		return JSONResponse(
			status_code=400,
			content=_body(request, "validation_error", field=field, errors=jsonable_errors(errors)),
		)


def jsonable_errors(errors: Any) -> list:
	return [
		{"loc": [str(part) for part in error.get("loc", ())], "msg": error.get("msg"), "type": error.get("type")}
		for error in errors
	]
