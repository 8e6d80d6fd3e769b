import os
import logging
import secrets
from typing import Optional

from flask import Flask, current_app, flash, redirect, request, url_for
from flask_wtf import CSRFProtect
from flask_wtf.csrf import generate_csrf, CSRFError

from .store import DEFAULT_TABLE
from .views import register_routes

# Cache a single SECRET_KEY value so all Gunicorn workers share it.
_GLOBAL_SECRET: Optional[str] = None

# Module-level logger (safe outside app context)
logger = logging.getLogger(__name__)


def _get_global_secret(test_config: Optional[dict], testing: bool) -> str:
    """Return a stable SECRET_KEY (env or test override; ephemeral only for tests).

    Production MUST supply FLASK_SECRET_KEY or SECRET_KEY to avoid per-worker divergence.
    """
    global _GLOBAL_SECRET
    if _GLOBAL_SECRET:
        return _GLOBAL_SECRET

    if test_config and test_config.get('SECRET_KEY'):
        _GLOBAL_SECRET = test_config['SECRET_KEY']
        return _GLOBAL_SECRET

    env_secret = os.getenv('FLASK_SECRET_KEY') or os.getenv('SECRET_KEY')
    if env_secret:
        _GLOBAL_SECRET = env_secret
        return _GLOBAL_SECRET

    if not testing:
        if os.getenv('FLASK_ENFORCE_SECRET') == '1':
            raise RuntimeError('SECRET_KEY environment variable required (FLASK_ENFORCE_SECRET=1).')
        logger.warning('No FLASK_SECRET_KEY provided; generating ephemeral secret (NOT recommended for multi-worker).')
    _GLOBAL_SECRET = secrets.token_hex(32)
    return _GLOBAL_SECRET


def _resolve_backend(config) -> str:
    backend = config.get('STORE_BACKEND')
    if not backend:
        backend = 'supabase' if config.get('SUPABASE_URL') and config.get('SUPABASE_KEY') else 'local'
    if backend not in ('supabase', 'local'):
        raise RuntimeError(f"Unknown STORE_BACKEND '{backend}' (expected 'supabase' or 'local').")
    if backend == 'supabase' and not (config.get('SUPABASE_URL') and config.get('SUPABASE_KEY')):
        raise RuntimeError('STORE_BACKEND=supabase requires SUPABASE_URL and SUPABASE_KEY.')
    return backend


def _fmt_number(value):
    if isinstance(value, float):
        return f"{value:g}"
    return value


def _register_security(app: Flask) -> None:
    @app.context_processor
    def inject_csrf():  # pragma: no cover simple helper
        return {"csrf_token": generate_csrf}

    @app.after_request
    def secure_headers(resp):  # pragma: no cover (header setting)
        resp.headers.setdefault('X-Content-Type-Options', 'nosniff')
        resp.headers.setdefault('Cache-Control', 'no-store')
        resp.headers.setdefault('Pragma', 'no-cache')
        return resp

    @app.errorhandler(CSRFError)
    def handle_csrf_error(e):
        form_keys = list(request.form.keys())
        has_token_field = 'csrf_token' in request.form
        token_len = len(request.form.get('csrf_token', '')) if has_token_field else 0
        current_app.logger.warning(
            'CSRF failure: %s | token_field=%s token_len=%s form_keys=%s path=%s method=%s',
            e.description,
            has_token_field,
            token_len,
            form_keys,
            request.path,
            request.method,
        )
        flash('Your session security token was missing or expired. Please reload the page and try again.', 'error')
        ref = request.headers.get('Referer')
        return redirect(ref or url_for('index')), 400


def create_app(test_config: Optional[dict] = None) -> Flask:
    """Application factory."""
    app = Flask(__name__)
    # An explicit TESTING value wins over the pytest environment marker.
    if test_config and 'TESTING' in test_config:
        testing = bool(test_config['TESTING'])
    else:
        testing = bool(os.getenv('PYTEST_CURRENT_TEST'))
    app.config['SECRET_KEY'] = _get_global_secret(test_config, testing)  # NOSONAR env/ephemeral sourced + cached
    app.config.setdefault('SESSION_COOKIE_SAMESITE', 'Lax')
    app.config.setdefault('SESSION_COOKIE_HTTPONLY', True)
    app.config.setdefault('WTF_CSRF_ENABLED', not testing)

    if not testing:
        CSRFProtect(app)

    # Hosted backend; falls back to the local JSON store when unset.
    app.config.setdefault('SUPABASE_URL', os.getenv('SUPABASE_URL'))
    app.config.setdefault('SUPABASE_KEY', os.getenv('SUPABASE_KEY') or os.getenv('SUPABASE_ANON_KEY'))
    app.config.setdefault('ENTRY_TABLE', os.getenv('ENTRY_TABLE', DEFAULT_TABLE))
    app.config.setdefault('STORE_BACKEND', os.getenv('STORE_BACKEND'))

    default_data_path = os.path.join(os.path.dirname(os.path.dirname(__file__)), 'data.json')
    app.config.setdefault('DATA_FILE', os.getenv('DATA_FILE') or default_data_path)
    default_user_path = os.path.join(os.path.dirname(os.path.dirname(__file__)), 'users.json')
    app.config.setdefault('USER_FILE', os.getenv('USER_FILE') or default_user_path)
    if test_config:
        app.config.update(test_config)
    app.config['STORE_BACKEND'] = _resolve_backend(app.config)

    if app.config['STORE_BACKEND'] == 'local':
        data_dir = os.path.dirname(app.config['DATA_FILE']) or '.'
        if not os.access(data_dir, os.W_OK):  # pragma: no cover (environment dependent)
            logger.warning(f"Data directory '{data_dir}' not writable for user; workout logs may fail to persist.")

    mpl_dir = os.getenv('MPLCONFIGDIR')
    if mpl_dir and not os.path.exists(mpl_dir):
        try:
            os.makedirs(mpl_dir, exist_ok=True)
        except OSError as e:  # pragma: no cover
            logger.warning(f"Unable to create MPLCONFIGDIR '{mpl_dir}': {e}")

    app.add_template_filter(_fmt_number, 'num')
    register_routes(app)
    _register_security(app)
    logger.info("gymlog app created (backend=%s, testing=%s)", app.config['STORE_BACKEND'], testing)
    return app
