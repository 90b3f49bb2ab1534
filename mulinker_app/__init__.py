# Load environment variables FIRST before any other imports
from dotenv import load_dotenv
load_dotenv()

import time
import uuid
import atexit
from typing import Optional
from flask import Flask, jsonify, request, g


def create_app(settings=None, service=None, testing: bool = False):
    """
    Create and configure an instance of the Flask application.

    Args:
        settings: Settings to use (default: read from the environment)
        service: Pre-built EnrichmentService (tests inject one with a fake
            search client)
        testing: Disable API rate limiting and skip the exit hook
    """
    from .config import Settings

    app = Flask(__name__, instance_relative_config=True)

    settings = settings or Settings.from_env()
    app.config.from_mapping(
        TESTING=testing,
        RATELIMIT_ENABLED=not testing,
        DISABLE_RATE_LIMITING=testing,
    )
    app.json.sort_keys = False

    # =============================================================================
    # LOGGING and RATE LIMITING
    # =============================================================================
    from .log import setup_logging, log, debug_log_event
    from .rate_limit import init_rate_limiting

    setup_logging(settings.log_dir)
    init_rate_limiting(app)

    @app.before_request
    def assign_request_id():
        g.request_id = uuid.uuid4().hex[:12]
        g.request_start = time.time()

    @app.after_request
    def debug_request_log(response):
        duration_ms: Optional[int] = None
        start_time = getattr(g, 'request_start', None)
        if start_time:
            duration_ms = int((time.time() - start_time) * 1000)
        debug_log_event({
            'event': 'request',
            'request_id': getattr(g, 'request_id', None),
            'method': request.method,
            'path': request.path,
            'status': response.status_code,
            'duration_ms': duration_ms,
            'remote_addr': request.remote_addr,
        })
        return response

    @app.teardown_request
    def debug_exception_log(error=None):
        if not error:
            return
        debug_log_event({
            'event': 'exception',
            'request_id': getattr(g, 'request_id', None),
            'path': request.path if request else None,
            'error_type': error.__class__.__name__,
            'error': str(error)
        })

    @app.errorhandler(500)
    def internal_error(error):
        return jsonify({'success': False, 'error': 'Internal server error'}), 500

    # =============================================================================
    # SERVICES
    # =============================================================================
    from .services import EnrichmentService

    if service is None:
        service = EnrichmentService(settings)
    app.extensions['mulinker'] = service
    if not testing:
        atexit.register(service.close)

    # =============================================================================
    # BLUEPRINTS & ROUTES
    # =============================================================================
    from .routes.enrich_api import enrich_bp

    app.register_blueprint(enrich_bp)

    @app.route('/api/health')
    def health():
        return jsonify({'status': 'ok'})

    log(f"📚 mulinker ready (cache: {service.cache.backend.name}, "
        f"concurrency: {settings.concurrency})")

    return app

# App instance should be created by the caller (run.py or WSGI entrypoint)
