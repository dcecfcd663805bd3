from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_login import LoginManager
from flask_migrate import Migrate

from vesitrail.config import Config

db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify(error="Authentication required", type="AUTH_ERROR", field=None), 401


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    # Domain errors render as JSON
    from vesitrail.exceptions import VesitRailError

    @app.errorhandler(VesitRailError)
    def handle_domain_error(error):
        return jsonify(error.to_dict()), error.status_code

    # Register blueprints
    from vesitrail.routes.auth import bp as auth_bp
    from vesitrail.routes.booklets import bp as booklets_bp
    from vesitrail.routes.applications import bp as applications_bp
    from vesitrail.routes.api import bp as api_bp
    from vesitrail.routes.settings import bp as settings_bp

    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(booklets_bp, url_prefix="/admin/booklets")
    app.register_blueprint(applications_bp, url_prefix="/applications")
    app.register_blueprint(api_bp, url_prefix="/api")
    app.register_blueprint(settings_bp, url_prefix="/settings")

    # Make sure models are registered with the metadata
    with app.app_context():
        from vesitrail.models import User, Settings, ConcessionBooklet, ConcessionApplication  # noqa: F401

    # Start the reconciliation scheduler (reads schedule setting from DB)
    if app.config.get("SCHEDULER_ENABLED"):
        from vesitrail.services.scheduler import init_app as init_scheduler
        init_scheduler(app)

    return app
