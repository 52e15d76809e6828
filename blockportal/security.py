from datetime import timedelta

from flask import Flask, request
from flask_wtf import CSRFProtect

csrf = CSRFProtect()


def configure_session(app: Flask, cookie_secure: bool, max_age_sec: int) -> None:
    app.config.update(
        SESSION_COOKIE_HTTPONLY=True,
        SESSION_COOKIE_SAMESITE="Strict",
        PERMANENT_SESSION_LIFETIME=timedelta(seconds=max_age_sec),
    )
    if cookie_secure:
        app.config["SESSION_COOKIE_SECURE"] = True


def configure_csrf(app: Flask, enabled: bool) -> None:
    app.config["WTF_CSRF_ENABLED"] = enabled
    csrf.init_app(app)


def add_security_headers(app: Flask) -> None:
    @app.after_request
    def _headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "same-origin"
        resp.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"

        # No caching for login state or admin pages
        if request.path.startswith(("/admin", "/login")):
            resp.headers["Cache-Control"] = "no-store"
        return resp
