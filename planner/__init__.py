from datetime import timedelta

from flask import Flask, g, jsonify, request
from flask_cors import CORS

from planner.logging_config import bind_request_context, clear_request_context, configure_logging, get_logger

logger = get_logger(__name__)


def create_app(config_class=None):
    # Import config after dotenv is loaded
    from planner.config import get_config
    from planner.api import api_bp
    from planner.api.errors import register_error_handlers
    from planner.auth.routes import auth_bp

    config_class = config_class or get_config()

    app = Flask(__name__)
    app.config.from_object(config_class)
    app.config["MAX_CONTENT_LENGTH"] = app.config.get("MAX_UPLOAD_BYTES")
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=app.config.get("SESSION_LIFETIME_HOURS", 12))

    configure_logging(log_level=app.config.get("LOG_LEVEL", "INFO"), log_file=app.config.get("LOG_FILE"))
    logger.info("Starting application", environment=getattr(config_class, "ENV", "unknown"),
                xano_base_url=app.config.get("XANO_BASE_URL"))

    # Get allowed origins from environment variable
    allowed_origins = app.config.get("CORS_ORIGINS", "*")
    if allowed_origins != "*":
        # Parse comma-separated list if provided
        allowed_origins = [origin.strip() for origin in allowed_origins.split(",")]

    CORS(app,
         resources={r"/*": {"origins": allowed_origins}},
         supports_credentials=True,
         allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
         methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"])

    app.register_blueprint(auth_bp)
    app.register_blueprint(api_bp)
    register_error_handlers(app)

    @app.before_request
    def bind_log_context():
        g.request_id = bind_request_context(
            request_id=request.headers.get("X-Request-ID"), method=request.method, path=request.path
        )

    @app.after_request
    def add_request_id(response):
        if "request_id" in g:
            response.headers["X-Request-ID"] = g.request_id
        return response

    @app.teardown_request
    def unbind_log_context(exc=None):
        clear_request_context()

    @app.route("/health")
    def health():
        return jsonify({"status": "ok", "environment": getattr(config_class, "ENV", "unknown")}), 200

    return app
