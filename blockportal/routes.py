import logging

from flask import Blueprint, g, redirect, render_template, request, session, url_for

from .authz import SESSION_TOKEN_KEY
from .ratelimit import (
    NORMAL,
    STATUS_CHALLENGE_FAILED,
    STATUS_INVALID_CREDENTIALS,
    STATUS_LOCKED,
    STATUS_SUCCESS,
    STATUS_SYSTEM_ERROR,
    GovernorDecision,
)

logger = logging.getLogger(__name__)

LAST_IDENTIFIER_KEY = "login_identifier"

STATUS_CODES = {
    STATUS_LOCKED: 429,
    STATUS_CHALLENGE_FAILED: 401,
    STATUS_INVALID_CREDENTIALS: 401,
    STATUS_SYSTEM_ERROR: 503,
}


def _ui_for_decision(policy, decision, failures: int = 0):
    """
    Returns (warning_message, warning_class) for the login form.
    """
    if decision.locked:
        return policy.msg_locked.format(n=decision.seconds_remaining), "danger"

    if decision.challenge_required:
        remaining = policy.lockout_at_failure - failures if failures else None
        if remaining:
            return policy.msg_attempts_left.format(n=remaining), "danger"
        return policy.msg_challenge_required.format(n=policy.challenge_from_failure), "warn"

    if 1 <= failures < policy.challenge_from_failure:
        return f"{failures} failed attempt{'s' if failures > 1 else ''}.", "warn"

    return None, None


def build_public_blueprint(settings, notifications, photos):
    bp = Blueprint("public", __name__)

    @bp.get("/")
    def home():
        return render_template(
            "home.html",
            slides=photos.list_slideshow(active_only=True),
            notifications=notifications.list_active(limit=5),
        )

    @bp.get("/notifications")
    def notification_board():
        return render_template("notifications.html", notifications=notifications.list_active())

    @bp.get("/gallery")
    def gallery():
        category = request.args.get("category", "").strip() or None
        return render_template(
            "gallery.html",
            images=photos.list_gallery(category),
            categories=photos.categories(),
            category=category,
        )

    return bp


def build_auth_blueprint(settings, governor):
    bp = Blueprint("auth", __name__)
    policy = settings.login_policy

    def _render(decision, error=None, userid="", failures=0, status=200):
        warning, warning_class = _ui_for_decision(policy, decision, failures)
        if warning == error:
            warning = None
        return render_template(
            "login.html",
            error=error,
            warning=warning,
            warning_class=warning_class,
            locked=decision.locked,
            seconds_remaining=decision.seconds_remaining,
            captcha_required=decision.challenge_required,
            captcha_question=decision.challenge.question_text if decision.challenge else None,
            userid=userid,
        ), status

    @bp.route("/login", methods=["GET", "POST"])
    def login():
        if g.get("auth") is not None:
            return redirect(url_for("admin.dashboard"))

        if request.method == "GET":
            remembered = session.get(LAST_IDENTIFIER_KEY)
            decision = governor.evaluate(remembered) if remembered else GovernorDecision(NORMAL)
            return _render(decision, userid=remembered or "")

        # POST
        userid = request.form.get("userid", "").strip()
        password = request.form.get("password", "")

        if not userid or not password:
            decision = governor.evaluate(userid) if userid else GovernorDecision(NORMAL)
            return _render(decision, error=policy.msg_missing_fields, userid=userid, status=400)

        result = governor.submit(userid, password, request.form.get("captcha"))

        if result.status == STATUS_SUCCESS:
            # New session on login to avoid fixation
            session.clear()
            session.permanent = True
            session[SESSION_TOKEN_KEY] = result.token
            return redirect(url_for("admin.dashboard"))

        session[LAST_IDENTIFIER_KEY] = userid
        if result.status == STATUS_SYSTEM_ERROR:
            logger.error("Login for %r could not be completed", userid)

        return _render(
            result.decision,
            error=result.message,
            userid=userid,
            failures=result.failures,
            status=STATUS_CODES.get(result.status, 401),
        )

    @bp.post("/logout")
    def logout():
        session.clear()
        return redirect(url_for("auth.login"))

    return bp
