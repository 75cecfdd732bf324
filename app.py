# Import necessary Flask components and other libraries
import os
import logging

from flask import Flask, jsonify, request
from flask_cors import CORS
from waitress import serve

from admin import admin
from config import PaymentConfig, load_settings
from errors import PaymentError
from models import db
from paystack import PaystackClient
from routes import api

# --- Basic Logging Configuration ---
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)
# --- End Logging Configuration ---


def create_app(test_config=None):
    """
    Builds the Flask application. `test_config` replaces the environment
    lookup entirely, so tests never need a .env file.
    """
    app = Flask(__name__)
    app.config.update(test_config if test_config is not None else load_settings())
    app.config.setdefault('SQLALCHEMY_TRACK_MODIFICATIONS', False)

    origins = app.config.get('ALLOWED_ORIGINS') or '*'
    CORS(app, resources={r"/api/*": {"origins": origins}})

    db.init_app(app)

    # One gateway client per app, built from explicit settings
    app.extensions['paystack'] = PaystackClient.from_config(PaymentConfig.from_mapping(app.config))

    app.register_blueprint(api)
    app.register_blueprint(admin)
    register_error_handlers(app)

    @app.route('/')
    def home():
        return jsonify({"message": "Awards voting & ticketing payments API"}), 200

    with app.app_context():
        db.create_all()

    return app


# --- Centralized Error Handlers ---
def register_error_handlers(app):
    @app.errorhandler(PaymentError)
    def payment_error(error):
        logger.info(f"{error.__class__.__name__} on {request.method} {request.path}: {error.message}")
        return jsonify({"message": error.message}), error.status_code

    @app.errorhandler(400)
    def bad_request(error):
        logger.error(f"Bad Request: {request.url}")
        return jsonify({"message": "Bad request. Please check your input."}), 400

    @app.errorhandler(404)
    def not_found(error):
        logger.warning(f"Not Found: {request.url}")
        return jsonify({"message": "Resource not found."}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        logger.warning(f"Method Not Allowed: {request.method} {request.url}")
        return jsonify({"message": "Method not allowed for this URL."}), 405

    @app.errorhandler(500)
    def internal_server_error(error):
        logger.exception("Internal Server Error occurred.")
        return jsonify({"message": "An unexpected error occurred on the server."}), 500
# --- End Centralized Error Handlers ---


if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5000))
    logger.info(f"Starting Flask application via Waitress server on port {port}…")
    serve(create_app(), host='0.0.0.0', port=port)
