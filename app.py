import logging
import os

from dotenv import load_dotenv
load_dotenv()  # Load .env file (GEMINI_API_KEY, DATABASE_URL, etc.)

from flask import Flask, jsonify
from werkzeug.middleware.proxy_fix import ProxyFix

from errors import register_error_handlers
from interview_routes import interview_bp
from models import db

logger = logging.getLogger(__name__)

TRUTHY_ENV_VALUES = {'1', 'true', 'yes', 'on'}


def _configure_logging():
    logging.basicConfig(level=logging.INFO,
                        format='%(asctime)s [%(levelname)s] %(message)s')


def _database_url() -> str:
    database_url = os.environ.get('DATABASE_URL', '')
    if database_url:
        # Hosted Postgres URLs often start with postgres:// but SQLAlchemy needs postgresql://
        if database_url.startswith('postgres://'):
            database_url = database_url.replace('postgres://', 'postgresql://', 1)
        return database_url
    db_path = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'interviews.db')
    return f'sqlite:///{db_path}'


def _default_config() -> dict:
    secret_key = os.environ.get('SECRET_KEY') or os.urandom(24).hex()
    return {
        'SECRET_KEY': secret_key,
        'JWT_SECRET': os.environ.get('JWT_SECRET', secret_key),
        'JWT_EXPIRES_HOURS': float(os.environ.get('JWT_EXPIRES_HOURS', 168)),
        'SQLALCHEMY_DATABASE_URI': _database_url(),
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'MAX_CONTENT_LENGTH': int(os.environ.get('MAX_FILE_SIZE', 10 * 1024 * 1024)),  # 10 MB
        'RESUME_FOLDER': os.environ.get('RESUME_FOLDER', os.path.join('uploads', 'resumes')),
        'APP_ENV': os.environ.get('APP_ENV', 'production').strip().lower(),
        'BEHIND_PROXY': os.environ.get('BEHIND_PROXY', '').strip().lower() in TRUTHY_ENV_VALUES,
        # Collaborator overrides; None means the real Gemini / file parsers
        'TEXT_GENERATOR': None,
        'TEXT_EXTRACTOR': None,
    }


def create_app(test_config: dict = None) -> Flask:
    """Build the Flask app. ``test_config`` overrides any default setting."""
    _configure_logging()

    app = Flask(__name__)
    app.config.update(_default_config())
    if test_config:
        app.config.update(test_config)

    if app.config['BEHIND_PROXY']:
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)

    db.init_app(app)
    with app.app_context():
        db.create_all()

    register_error_handlers(app)
    app.register_blueprint(interview_bp)

    @app.route('/health')
    def health_check():
        return jsonify({'status': 'ok'})

    logger.info('App ready (env=%s, db=%s)', app.config['APP_ENV'],
                app.config['SQLALCHEMY_DATABASE_URI'].split('://', 1)[0])
    return app


if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5050))
    create_app().run(debug=os.environ.get('APP_ENV') == 'development', port=port)
