import os
from dotenv import load_dotenv

# Load environment variables FIRST before any other imports
load_dotenv()

from flask import Flask, jsonify
from flask_cors import CORS
from werkzeug.exceptions import HTTPException
import logging

from config import config
from database import init_database, database_health_check
from logging_config import setup_app_logging
from products_api import products_bp

logger = logging.getLogger(__name__)


def create_app(config_name=None):
    """Application factory."""
    config_name = config_name or os.getenv('APP_CONFIG') or os.getenv('FLASK_ENV') or 'default'
    app = Flask(__name__)
    app.config.from_object(config.get(config_name, config['default']))
    app.json.sort_keys = False

    if not app.config.get('TESTING'):
        setup_app_logging(app, app.config['LOG_PATH'], app.config.get('LOG_LEVEL', 'INFO'))

    CORS(app, resources={r"/api/*": {"origins": app.config.get('CORS_ORIGINS', '*')}})

    init_database(
        app.config['DATABASE_URL'],
        create_tables=True,
        echo=app.config.get('DATABASE_ECHO', False),
    )

    app.register_blueprint(products_bp)

    @app.route('/api/health', methods=['GET'])
    def health():
        """Report service and database health."""
        db_health = database_health_check()
        status_code = 200 if db_health.get('status') == 'healthy' else 503
        return jsonify({
            'status': 'ok' if status_code == 200 else 'degraded',
            'database': db_health,
            'shopify_api_version': app.config.get('SHOPIFY_API_VERSION'),
        }), status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({
            'success': False,
            'message': error.description,
            'error_code': error.name.upper().replace(' ', '_'),
        }), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        logger.exception(f"Unhandled error: {error}")
        return jsonify({
            'success': False,
            'message': 'Internal server error',
            'error_code': 'INTERNAL_ERROR',
        }), 500

    return app


if __name__ == '__main__':
    app = create_app()
    app.run(host='0.0.0.0', port=int(os.getenv('PORT', '3560')), debug=app.config.get('DEBUG', False))
