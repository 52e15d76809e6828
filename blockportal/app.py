import logging
import os

from flask import Flask, render_template

from .admin_routes import build_admin_blueprint
from .authz import init_auth
from .backend import SupabaseClient
from .config import Settings
from .directory import AdminDirectory
from .errors import PortalError
from .logging_config import configure_logging
from .notifications import NotificationService
from .photos import PhotoService
from .ratelimit import LoginGovernor
from .routes import build_auth_blueprint, build_public_blueprint
from .security import add_security_headers, configure_csrf, configure_session
from .sessions import SessionIssuer
from .slotstore import build_slot_store

logger = logging.getLogger(__name__)


def create_app(settings=None, backend=None, store=None, directory=None, rng=None, clock=None) -> Flask:
    """
    Build the portal. Collaborators can be injected (tests pass an in-memory
    backend and a fixed clock); otherwise they are created from settings.
    """
    settings = settings or Settings()
    configure_logging(settings.log_level)

    app = Flask(__name__)
    app.secret_key = settings.secret_key
    app.config["MAX_CONTENT_LENGTH"] = settings.max_request_bytes

    configure_session(app, settings.session_cookie_secure, settings.session_max_age_sec)
    configure_csrf(app, settings.csrf_enabled)
    add_security_headers(app)

    if backend is None:
        if not settings.supabase_service_key:
            logger.warning("SUPABASE_SERVICE_ROLE_KEY is not set; backend calls will be rejected")
        backend = SupabaseClient(settings.supabase_url, settings.supabase_service_key,
                                 timeout=settings.backend_timeout_sec)

    directory = directory or AdminDirectory(backend)
    notifications = NotificationService(backend, settings.max_attachment_bytes)
    photos = PhotoService(backend, settings.max_image_bytes)

    clock_kwargs = {"clock": clock} if clock else {}
    issuer = SessionIssuer(settings.secret_key, settings.session_max_age_sec, **clock_kwargs)
    governor = LoginGovernor(
        settings.login_policy,
        store if store is not None else build_slot_store(settings, backend),
        verifier=directory,
        issuer=issuer,
        rng=rng,
        **clock_kwargs,
    )

    init_auth(app, issuer, directory)
    app.register_blueprint(build_public_blueprint(settings, notifications, photos))
    app.register_blueprint(build_auth_blueprint(settings, governor))
    app.register_blueprint(build_admin_blueprint(settings, directory, notifications, photos))

    app.extensions["blockportal"] = {
        "settings": settings,
        "backend": backend,
        "governor": governor,
        "issuer": issuer,
        "directory": directory,
    }

    @app.context_processor
    def _branding():
        return {"brand_name": settings.brand_name, "office_name": settings.office_name}

    @app.errorhandler(PortalError)
    def _portal_error(exc):
        if exc.status_code >= 500:
            logger.error("Request failed: %s", exc)
        return render_template("error.html", message=exc.message, status=exc.status_code), exc.status_code

    @app.errorhandler(403)
    def _forbidden(_exc):
        return render_template("error.html", message="You do not have access to this page.", status=403), 403

    @app.errorhandler(404)
    def _not_found(_exc):
        return render_template("error.html", message="Page not found.", status=404), 404

    return app


if __name__ == "__main__":
    create_app().run("127.0.0.1", int(os.environ.get("PORT", "8000")), debug=False)
