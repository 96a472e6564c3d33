"""Provider-states service for the demo provider

Pact verifiers POST {"action": "setup"|"teardown", "state": <name>, "params": {...}} to /provider-states before
(and after) replaying an interaction. Each state manipulates the user store shared with the provider app
"""

from collections.abc import Callable
from typing import Any

from quart import Quart, Response, jsonify, request

from demo_provider.api.user.models import UserRequest, UserRole
from demo_provider.handlers import bp_handlers, error_response
from demo_provider.store import users

StateHandler = Callable[[dict[str, Any]], None]


def user_exists(params: dict[str, Any]) -> None:
    user_id = int(params.get("id", 1))
    data = UserRequest(
        first_name=params.get("first_name", f"first_name_{user_id}"),
        last_name=params.get("last_name", f"last_name_{user_id}"),
        email=params.get("email", f"user{user_id}@demo.provider.net"),
        role=UserRole(params.get("role", UserRole.VIEWER.value)),
    )
    users.add(data, user_id=user_id)


def user_does_not_exist(params: dict[str, Any]) -> None:
    users.delete(int(params.get("id", 1)))


def users_exist(params: dict[str, Any]) -> None:
    users.reset()
    for user_id in range(1, int(params.get("count", 3)) + 1):
        user_exists({"id": user_id, "role": list(UserRole)[user_id % len(UserRole)].value})


def no_users_exist(params: dict[str, Any]) -> None:
    users.reset()


STATE_HANDLERS: dict[str, StateHandler] = {
    "user exists": user_exists,
    "user does not exist": user_does_not_exist,
    "users exist": users_exist,
    "no users exist": no_users_exist,
}


def create_provider_states_app(path: str = "/provider-states") -> Quart:
    """Create the provider-states app"""
    app = Quart(__name__)
    app.register_blueprint(bp_handlers, name=bp_handlers.name)

    @app.post(path)
    async def activate_state() -> tuple[Response, int]:
        """Set up or tear down a provider state"""
        body = await request.get_json(force=True, silent=True) or {}
        state = body.get("state")
        action = body.get("action", "setup")
        params = body.get("params") or {}
        if action == "teardown":
            return jsonify({"state": state, "action": action}), 200
        if not (handler := STATE_HANDLERS.get(state)):
            app.logger.error(f"Unknown provider state: {state}")
            return error_response(500, f"Unknown provider state: {state}")
        handler(params)
        app.logger.info(f"Provider state has been set up: {state} {params}")
        return jsonify({"state": state, "action": action}), 200

    return app
