"""
API gateway: combines the auth and events blueprints.
This is the local entrypoint for development:

    python -m backend.gateway.server
"""

from flask import Flask, jsonify, send_from_directory
from flask_cors import CORS
import os
import logging
from dotenv import load_dotenv

from backend.auth_service.routes import auth_bp
from backend.common import storage
from backend.common.errors import register_error_handlers
from backend.events_service.routes import events_bp

load_dotenv()

# Basic console logging during API requests
logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(asctime)s - %(message)s")


def cors_origins() -> list:
    """
    Allowed CORS origins from CORS_ORIGINS (comma separated, default "*").
    """
    raw = os.getenv("CORS_ORIGINS", "*")
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def create_app() -> Flask:
    """
    Application factory for creating the Flask app.

    Returns:
        Flask: The configured Flask application.
    """
    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = int(os.getenv("MAX_UPLOAD_MB", 5)) * 1024 * 1024

    CORS(app, resources={
        r"/*": {
            "origins": cors_origins(),
            "methods": ["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            "allow_headers": ["Content-Type", "Authorization"],
            "expose_headers": ["Content-Type", "Authorization"],
        }
    })

    # --- REGISTER BLUEPRINTS ---
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(events_bp, url_prefix="/events")
    register_error_handlers(app)
    logging.info("All blueprints registered successfully.")

    # --- UPLOADED IMAGES ---
    @app.route(f"{storage.upload_url_prefix()}/<path:filename>")
    def uploaded_file(filename: str):
        """
        Serve an image stored by the events service.
        """
        return send_from_directory(storage.upload_folder(), filename)

    # --- BASIC HEALTH CHECKPOINTS ---
    @app.route("/")
    def ping():
        """
        Root URL for simple 'online' check.
        """
        return jsonify({"status": "Event Finder API running"}), 200

    @app.route("/health")
    def health():
        """
        Health check endpoint.
        """
        return jsonify({"status": "ok"}), 200

    return app


if __name__ == "__main__":
    app = create_app()
    port = int(os.getenv("GATEWAY_PORT", 5050))
    app.run(host="0.0.0.0", port=port, debug=os.getenv("FLASK_DEBUG") == "1")
