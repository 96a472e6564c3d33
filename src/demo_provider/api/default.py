from quart import Blueprint, Response, jsonify
from quart_schema import hide

bp_default = Blueprint("Default", __name__)


@bp_default.get("/health")
@hide
async def health() -> Response:
    return jsonify({"status": "ok"})
