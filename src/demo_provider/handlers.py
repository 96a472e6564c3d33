"""Request ID propagation and JSON error responses shared by the provider app and the provider-states app"""

import json
import uuid
from typing import Any

from quart import Blueprint, Response, g, jsonify, request
from quart import current_app as app
from quart_schema import RequestSchemaValidationError
from werkzeug.exceptions import HTTPException

REQUEST_ID_HEADER = "X-Request-ID"

bp_handlers = Blueprint("handlers", __name__)


def error_response(code: int, message: Any) -> tuple[Response, int]:
    """{"error": {"code": <status>, "message": <message>, "request_id": <request ID>}}"""
    return jsonify({"error": {"code": code, "message": message, "request_id": g.get("request_id", "")}}), code


@bp_handlers.before_app_request
async def assign_request_id() -> None:
    g.request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())


@bp_handlers.after_app_request
async def add_request_id_header(response: Response) -> Response:
    response.headers[REQUEST_ID_HEADER] = g.get("request_id", "")
    return response


@bp_handlers.app_errorhandler(RequestSchemaValidationError)
async def handle_validation_error(error: RequestSchemaValidationError) -> tuple[Response, int]:
    validation_error = error.validation_error
    if isinstance(validation_error, TypeError):
        return error_response(400, str(validation_error))
    return error_response(400, json.loads(validation_error.json()))


@bp_handlers.app_errorhandler(HTTPException)
async def handle_http_error(error: HTTPException) -> tuple[Response, int]:
    return error_response(error.code or 500, error.description)


@bp_handlers.app_errorhandler(Exception)
async def handle_unexpected_error(error: Exception) -> tuple[Response, int]:
    app.logger.exception(error)
    return error_response(500, "An unexpected error occurred while processing your request")
