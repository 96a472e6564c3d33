from quart import Blueprint, Response, abort, jsonify
from quart_schema import tag, validate_querystring, validate_request

from demo_provider.store import users

from .models import UserQuery, UserRequest

bp_user = Blueprint("User", __name__, url_prefix="/users")
tag_users = tag(["Users"])


@bp_user.post("")
@tag_users
@validate_request(UserRequest)
async def create_user(data: UserRequest) -> tuple[Response, int]:
    """Create a new user"""
    user = users.add(data)
    return jsonify(user.model_dump(mode="json")), 201


@bp_user.get("/<int:user_id>")
@tag_users
async def get_user(user_id: int) -> tuple[Response, int]:
    """Get user"""
    if user := users.get(user_id):
        return jsonify(user.model_dump(mode="json")), 200
    else:
        abort(404, f"User ID {user_id} does not exist")


@bp_user.get("")
@tag_users
@validate_querystring(UserQuery)
async def get_users(query_args: UserQuery) -> tuple[Response, int]:
    """Get users"""
    return jsonify([u.model_dump(mode="json") for u in users.find(role=query_args.role)]), 200


@bp_user.delete("/<int:user_id>")
@tag_users
async def delete_user(user_id: int) -> tuple[Response, int]:
    """Delete user"""
    if not users.delete(user_id):
        abort(404, f"User ID {user_id} does not exist")
    return jsonify({"message": f"Deleted user {user_id}"}), 200
