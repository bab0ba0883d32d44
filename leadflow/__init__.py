"""
Flask application factory.

Creates and configures the Flask app, registers all blueprints.
"""
from flask import Flask


def create_app():
    """Create and configure the Flask application."""
    from leadflow.logging_config import configure_logging

    app = Flask(__name__)

    configure_logging(app)

    # Register blueprints
    from leadflow.routes.errors import bp as errors_bp
    from leadflow.routes.leads import bp as leads_bp
    from leadflow.routes.analytics import bp as analytics_bp

    app.register_blueprint(errors_bp)
    app.register_blueprint(leads_bp)
    app.register_blueprint(analytics_bp)

    # Import models so Base.metadata knows about them (required for SQLAlchemy).
    # Schema is managed by Alembic, no init_db() call.
    import importlib
    importlib.import_module('leadflow.models.lead')
    importlib.import_module('leadflow.models.stage_history')
    importlib.import_module('leadflow.models.external_record')
    importlib.import_module('leadflow.models.qualification_criterion')

    return app
