from flask import Flask, request, jsonify
from flask_migrate import Migrate
from flask_cors import CORS
from labtracker.config import Config
from labtracker.models import db, Quote
from labtracker.cache import query_cache
from labtracker.errors import register_error_handlers
from labtracker.impersonation import impersonation_events
from labtracker.realtime import change_feed
import time
import logging

# Configure logging
logging.basicConfig(level=getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO))
logger = logging.getLogger(__name__)

app = Flask(__name__)
app.config.from_object(Config)
CORS(app, origins=Config.CORS_ORIGINS)

db.init_app(app)
migrate = Migrate(app, db)

from labtracker.api import api  # noqa: E402
from labtracker.functions import functions  # noqa: E402

app.register_blueprint(api)
app.register_blueprint(functions)
register_error_handlers(app)


# ========== REALTIME ==========
def invalidate_quote_views(change):
    """Any quote row change makes every cached quote view stale"""
    logger.info(f"Quote change {change.event} {change.row_id}, refreshing cached views")
    query_cache.invalidate(("quotes",))
    query_cache.invalidate(("pipeline",))
    query_cache.invalidate(("lab-quotes",))


def log_impersonation_change(user):
    if user is None:
        logger.info("Impersonation stopped")
    else:
        logger.info(f"Impersonating {user.type} {user.id}")


change_feed.watch(Quote)
change_feed.subscribe("quotes", invalidate_quote_views)
impersonation_events.subscribe(log_impersonation_change)


@app.before_request
def log_api_request():
    if request.path.startswith("/api/") or request.path.startswith("/functions/"):
        logger.info(f"API Route: {request.path} - Method: {request.method}")


# ========== HEALTH CHECK ==========
@app.route("/health", methods=["GET"])
def health():
    """Health check endpoint for the load balancer"""
    try:
        from sqlalchemy import text
        db.session.execute(text("SELECT 1"))
        db_status = "healthy"
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        db_status = "unhealthy"

    health_status = {
        "status": "healthy" if db_status == "healthy" else "degraded",
        "database": db_status,
        "timestamp": time.time()
    }

    status_code = 200 if health_status["status"] == "healthy" else 503
    return jsonify(health_status), status_code


@app.route("/")
def index():
    return jsonify({
        "message": "Lab Testing Tracker API",
        "version": "1.0.0",
        "endpoints": {
            "health": "/health",
            "api": "/api/v1",
            "functions": "/functions"
        }
    })
