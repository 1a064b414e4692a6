from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
import logging
import os

from familytree.logging_config import setup_logging

db = SQLAlchemy()

logger = logging.getLogger(__name__)


def create_app(test_config=None):
    app = Flask(__name__)

    # Default database lives in data/ next to the package
    base_dir = os.path.dirname(os.path.abspath(__file__))
    data_dir = os.path.join(base_dir, '..', 'data')

    app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', 'familytree-dev-secret')
    app.config['SQLALCHEMY_DATABASE_URI'] = os.environ.get(
        'FAMILYTREE_DATABASE_URI', 'sqlite:///' + os.path.join(data_dir, 'familytree.db'))
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.config['LAYOUT_STRATEGY'] = os.environ.get('FAMILYTREE_LAYOUT_STRATEGY', 'subtree')
    app.config['AUTOFIT_PADDING'] = 120
    app.config['LOG_LEVEL'] = os.environ.get('FAMILYTREE_LOG_LEVEL', 'INFO')
    app.config['LOG_FILE'] = os.environ.get('FAMILYTREE_LOG_FILE')

    if test_config:
        app.config.update(test_config)

    setup_logging(app.config['LOG_LEVEL'], app.config['LOG_FILE'])

    # Only the bundled SQLite file needs its folder
    if app.config['SQLALCHEMY_DATABASE_URI'].startswith('sqlite:///' + data_dir):
        os.makedirs(data_dir, exist_ok=True)

    # CORS for the browser client on the local network
    CORS(app)

    db.init_app(app)

    from familytree.routes import api_bp
    app.register_blueprint(api_bp, url_prefix='/api')

    with app.app_context():
        db.create_all()

    logger.info('Family tree app ready (layout strategy: %s)', app.config['LAYOUT_STRATEGY'])
    return app
