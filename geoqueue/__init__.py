import logging

from dotenv import load_dotenv
from flask import Flask, jsonify

from geoqueue.config import Config
from geoqueue.extensions import db, migrate, login_manager
from geoqueue.services import liveness, progress_channel
from geoqueue.services.errors import QueueError


def create_app(config_object=None):
    load_dotenv()

    app = Flask(__name__)
    app.config.from_object(config_object or Config)

    logging.basicConfig(level=app.config.get("LOG_LEVEL", "INFO"))

    # Extensions
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    from geoqueue import models  # noqa: F401

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"error": "Unauthorized"}), 401

    # Process-wide services (one per process)
    app.extensions[liveness.EXTENSION_KEY] = liveness.ProcessorLiveness(
        healthy_seconds=app.config["PROCESSOR_HEALTHY_SECONDS"],
    )
    app.extensions[progress_channel.EXTENSION_KEY] = progress_channel.ProgressChannel(
        heartbeat_seconds=app.config["PROGRESS_HEARTBEAT_SECONDS"],
        backlog=app.config["PROGRESS_SUBSCRIBER_BACKLOG"],
    )

    @app.errorhandler(QueueError)
    def queue_error(err: QueueError):
        return jsonify({"error": err.message, "code": err.code}), err.status_code

    # Blueprints
    from geoqueue.blueprints.auth import auth_bp
    from geoqueue.blueprints.processing import processing_bp
    from geoqueue.blueprints.jobs import jobs_bp
    from geoqueue.blueprints.print_queue import print_queue_bp
    from geoqueue.blueprints.admin import admin_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(processing_bp)
    app.register_blueprint(jobs_bp)
    app.register_blueprint(print_queue_bp)
    app.register_blueprint(admin_bp)

    # Simple healthcheck
    @app.get("/health")
    def health():
        return {"ok": True}

    return app
