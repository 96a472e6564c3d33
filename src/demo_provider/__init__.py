from quart import Blueprint, Quart
from quart_schema import Info, QuartSchema


def create_app(version: int = 1) -> Quart:
    """Create the demo provider app"""
    app = Quart(__name__)
    QuartSchema(
        app,
        info=Info(title="Demo provider API", version="0.1.0"),
        tags=[{"name": "Users", "description": "User APIs"}],
    )
    app.json.sort_keys = False
    _register_blueprints(app, version=version)
    return app


def _register_blueprints(app: Quart, version: int) -> None:
    from demo_provider.api.default import bp_default
    from demo_provider.api.user.user import bp_user
    from demo_provider.handlers import bp_handlers

    bp_api = Blueprint("demo_provider", __name__, url_prefix=f"/v{version}")
    bp_api.register_blueprint(bp_user, name=bp_user.name)

    app.register_blueprint(bp_default, name=bp_default.name)
    app.register_blueprint(bp_api, name=bp_api.name)
    app.register_blueprint(bp_handlers, name=bp_handlers.name)
