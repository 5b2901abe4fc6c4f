import os
import time
import logging
from datetime import datetime
from typing import List, Optional

from flask import Flask, g, jsonify, request, send_from_directory
from flask_cors import CORS
from dotenv import load_dotenv
from werkzeug.exceptions import HTTPException

from models import db
from workflow import WorkflowError, DEFAULT_MAX_FINALISTS, error_body, get_event_state

# Load environment variables from .env file if present
load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

SERVER_DIR = os.path.dirname(os.path.abspath(__file__))
MASKED_FIELDS = ('code', 'codes', 'password')


def database_uri(database_url: Optional[str]) -> str:
    """SQLAlchemy URI: PostgreSQL from DATABASE_URL, local SQLite file otherwise"""
    if not database_url:
        return f"sqlite:///{os.path.join(SERVER_DIR, 'database.db')}"
    # Convert postgres:// to postgresql:// for SQLAlchemy
    return database_url.replace('postgres://', 'postgresql://', 1)


def cors_origins(flask_env: str) -> List[str]:
    allowed = os.getenv('CORS_ORIGINS', '').strip()
    if allowed:
        return [o.strip() for o in allowed.split(',') if o.strip()]
    if flask_env == 'development':
        return [
            "http://localhost:3000",
            "http://localhost:3001",
            "http://localhost:5173",
            "http://127.0.0.1:3000",
            "http://127.0.0.1:5173",
        ]
    return ["*"]


def create_app(test_config: Optional[dict] = None) -> Flask:
    # Read environment variables
    DATABASE_URL = os.getenv("DATABASE_URL")
    flask_env = os.getenv('FLASK_ENV', '').lower()

    if not DATABASE_URL:
        logger.info("ℹ DATABASE_URL not set, using SQLite for local development")
    else:
        logger.info(f"✅ DATABASE_URL detected: {DATABASE_URL[:40]}...")

    app = Flask(__name__)
    app.config.from_mapping(
        SECRET_KEY=os.getenv("SECRET_KEY") or os.getenv("FLASK_SECRET", "dev-secret-key-change-in-production"),
        SQLALCHEMY_DATABASE_URI=database_uri(DATABASE_URL),
        SQLALCHEMY_TRACK_MODIFICATIONS=False,
        ADMIN_USER=os.getenv("ADMIN_USER", "admin"),
        ADMIN_PASSWORD=os.getenv("ADMIN_PASSWORD", "admin"),
        UPLOAD_FOLDER=os.getenv("UPLOAD_FOLDER") or os.path.join(SERVER_DIR, 'uploads', 'candidates'),
        MAX_CONTENT_LENGTH=int(os.getenv("MAX_UPLOAD_MB", "10")) * 1024 * 1024,
        MAX_FINALISTS=int(os.getenv("MAX_FINALISTS", str(DEFAULT_MAX_FINALISTS))),
    )
    if DATABASE_URL:
        # Connection pool settings for hosted PostgreSQL
        app.config["SQLALCHEMY_ENGINE_OPTIONS"] = {
            "pool_pre_ping": True,  # Test connections before using them
            "pool_recycle": 300,
            "pool_size": 5,
            "max_overflow": 10,
        }
    if test_config:
        app.config.update(test_config)

    db.init_app(app)

    origins = cors_origins(flask_env)
    CORS(app,
         origins=origins,
         methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
         allow_headers=["Content-Type", "Authorization"],
         max_age=3600)
    logger.info(f"✅ CORS configured for origins: {origins}")

    os.makedirs(app.config['UPLOAD_FOLDER'], exist_ok=True)

    # Create tables and the event state row on startup
    with app.app_context():
        db.create_all()
        event_state = get_event_state()
        logger.info(f"✅ Database ready, event stage: {event_state.state}")

    from public_routes import public_bp
    from admin_routes import admin_bp
    app.register_blueprint(public_bp)
    app.register_blueprint(admin_bp)

    @app.before_request
    def log_request_info():
        """Log incoming requests for debugging"""
        g.request_started = time.perf_counter()
        logger.info(f"📥 {request.method} {request.path} from {request.origin or request.remote_addr}")
        if request.method in ['POST', 'PUT'] and request.is_json:
            data = request.get_json(silent=True)
            if isinstance(data, dict):
                # Mask codes and credentials
                safe_data = {k: ('***' if k in MASKED_FIELDS else v) for k, v in data.items()}
                logger.debug(f"Request data: {safe_data}")

    @app.after_request
    def log_response_info(response):
        """Log status and duration of every response; failures at warning level"""
        started = g.get('request_started')
        duration_ms = (time.perf_counter() - started) * 1000 if started is not None else 0.0
        origin = request.origin or request.remote_addr
        line = f"{request.method} {request.path} {response.status_code} {duration_ms:.1f}ms from {origin}"
        if response.status_code >= 400:
            body = response.get_json(silent=True) if response.is_json else None
            detail = body.get('message') if isinstance(body, dict) else None
            logger.warning(f"📤 {line}" + (f" - {detail[:200]}" if detail else ""))
        else:
            logger.info(f"📤 {line}")
        return response

    @app.errorhandler(WorkflowError)
    def handle_workflow_error(error):
        logger.warning(f"⚠ {request.method} {request.path} rejected: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found(error):
        logger.warning(f"⚠ 404 Not Found: {request.path}")
        return jsonify(error_body("Endpoint not found")), 404

    @app.errorhandler(413)
    def too_large(error):
        logger.warning(f"⚠ 413 Upload too large: {request.path}")
        return jsonify(error_body("The uploaded file is too large")), 413

    @app.errorhandler(Exception)
    def handle_exception(e):
        """Handle all unhandled exceptions"""
        if isinstance(e, HTTPException):
            return jsonify(error_body(e.description)), e.code
        logger.error(f"❌ Unhandled exception: {e}", exc_info=True)
        db.session.rollback()
        return jsonify(error_body("An unexpected error occurred. Please try again later.")), 500

    @app.get("/api/health")
    def health_check():
        """Health check endpoint to verify backend is running"""
        try:
            db.session.execute(db.text("SELECT 1"))
            db_status = "connected"
        except Exception as e:
            logger.error(f"Health check error: {e}")
            db.session.rollback()
            db_status = "error"
        return jsonify({
            "status": "ok",
            "database": db_status,
            "timestamp": datetime.utcnow().isoformat()
        })

    @app.get("/uploads/candidates/<path:filename>")
    def candidate_image(filename):
        return send_from_directory(app.config['UPLOAD_FOLDER'], filename)

    return app


if __name__ == "__main__":
    app = create_app()
    port = int(os.environ.get("PORT", 3001))
    app.run(debug=True, host='0.0.0.0', port=port)
