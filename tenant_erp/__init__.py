"""Flask application factory."""
import logging
import os
import traceback

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from tenant_erp.database import init_db
from tenant_erp.utils.responses import error


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)
    app.json.sort_keys = app.config.get('JSON_SORT_KEYS', False)

    logging.basicConfig(
        level=getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO),
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s'
    )
    app.logger.setLevel(logging.getLogger().level)

    # Sentry error tracking in production only
    if os.getenv('SENTRY_DSN') and (app.config.get('ENV') == 'production' or os.getenv('FLASK_ENV') == 'production'):
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=os.getenv('SENTRY_DSN'),
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,  # 10% of transactions for performance monitoring
            profiles_sample_rate=0.1,
            environment=os.getenv('FLASK_ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Prometheus metrics instrumentation
    from tenant_erp.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: Enable ProxyFix for HTTPS behind a reverse proxy
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(
            app.wsgi_app,
            x_for=1,      # Trust X-Forwarded-For with 1 proxy
            x_proto=1,    # Trust X-Forwarded-Proto
            x_host=1,     # Trust X-Forwarded-Host
            x_port=1,     # Trust X-Forwarded-Port
            x_prefix=0
        )

    # Initialize database
    init_db(app)

    # Decode the bearer token (if any) before each request
    from tenant_erp.middleware import load_auth_context

    @app.before_request
    def before_request_handler():
        load_auth_context()

    # Error Handlers
    from tenant_erp.exceptions import ApiError

    @app.errorhandler(ApiError)
    def handle_api_error(e):
        """Handle application exceptions raised by services and decorators."""
        if e.status_code >= 500:
            app.logger.error(f"ApiError [{e.status_code}]: {e.message}")
        else:
            app.logger.warning(f"ApiError [{e.status_code}]: {e.message}")
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def handle_http_exception(e):
        """Route not found, method not allowed, oversized body..."""
        return error(e.description or e.name, e.code)

    @app.errorhandler(Exception)
    def internal_error(e):
        app.logger.error(f"Unhandled Exception: {e}")
        app.logger.error(f"Traceback: {traceback.format_exc()}")
        return error('Server error occurred', 500)

    # Register blueprints
    from tenant_erp.blueprints.main import main_bp
    from tenant_erp.blueprints.metrics import metrics_bp
    from tenant_erp.blueprints.auth import auth_bp
    from tenant_erp.blueprints.organizations import organizations_bp
    from tenant_erp.blueprints.users import users_bp
    from tenant_erp.blueprints.employees import employees_bp
    from tenant_erp.blueprints.system_features import system_features_bp
    from tenant_erp.blueprints.bookings import bookings_bp
    from tenant_erp.blueprints.vehicles import vehicles_bp
    from tenant_erp.blueprints.categories import categories_bp
    from tenant_erp.blueprints.products import products_bp
    from tenant_erp.blueprints.services import services_bp
    from tenant_erp.blueprints.sessions import sessions_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(metrics_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(organizations_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(employees_bp)
    app.register_blueprint(system_features_bp)
    app.register_blueprint(bookings_bp)
    app.register_blueprint(vehicles_bp)
    app.register_blueprint(categories_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(services_bp)
    app.register_blueprint(sessions_bp)

    # Register CLI commands
    from tenant_erp.cli_commands import init_cli_commands
    init_cli_commands(app)

    return app
