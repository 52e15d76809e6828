import logging

from flask import Blueprint, flash, g, redirect, render_template, request, url_for

from .authz import (
    MANAGE_ADMINS,
    MANAGE_NOTIFICATIONS,
    MANAGE_PHOTOS,
    ROLES,
    SUB_ADMIN,
    VIEW_DASHBOARD,
    require_capability,
)
from .errors import PortalError
from .photos import GALLERY, SLIDESHOW
from .uploads import from_file_storage

logger = logging.getLogger(__name__)


def _checked(name: str) -> bool:
    return request.form.get(name) in ("on", "true", "1", "yes")


def _int(value, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def build_admin_blueprint(settings, directory, notifications, photos):
    bp = Blueprint("admin", __name__, url_prefix="/admin")

    # ---- dashboard ----------------------------------------------------

    @bp.get("/")
    @require_capability(VIEW_DASHBOARD)
    def dashboard():
        auth = g.auth
        stats = {}
        if auth.can(MANAGE_NOTIFICATIONS):
            items = notifications.list_all()
            stats["notifications"] = len(items)
            stats["active_notifications"] = sum(1 for n in items if n.get("is_active"))
        if auth.can(MANAGE_PHOTOS):
            stats["gallery"] = len(photos.list_gallery())
            stats["slideshow"] = len(photos.list_slideshow())
        if auth.can(MANAGE_ADMINS):
            stats["admins"] = len(directory.list_admins())
        return render_template("admin/dashboard.html", stats=stats)

    # ---- notifications ------------------------------------------------

    @bp.get("/notifications")
    @require_capability(MANAGE_NOTIFICATIONS)
    def notification_list():
        return render_template("admin/notifications.html", notifications=notifications.list_all())

    @bp.route("/notifications/new", methods=["GET", "POST"])
    @require_capability(MANAGE_NOTIFICATIONS)
    def notification_create():
        if request.method == "GET":
            return render_template("admin/notification_form.html", notification=None)

        try:
            notifications.create(
                g.auth,
                title=request.form.get("title"),
                content=request.form.get("content"),
                is_active=_checked("is_active"),
                upload=from_file_storage(request.files.get("file")),
                dynamic_url=request.form.get("dynamic_url"),
                url_title=request.form.get("url_title"),
            )
        except PortalError as exc:
            flash(exc.message, "error")
            return render_template("admin/notification_form.html", notification=request.form), exc.status_code

        flash("Notification created.", "success")
        return redirect(url_for("admin.notification_list"))

    @bp.route("/notifications/<notification_id>/edit", methods=["GET", "POST"])
    @require_capability(MANAGE_NOTIFICATIONS)
    def notification_edit(notification_id):
        current = notifications.get(notification_id)
        if request.method == "GET":
            return render_template("admin/notification_form.html", notification=current)

        try:
            notifications.update(
                notification_id,
                title=request.form.get("title"),
                content=request.form.get("content"),
                is_active=_checked("is_active"),
            )
        except PortalError as exc:
            flash(exc.message, "error")
            return render_template("admin/notification_form.html", notification=current), exc.status_code

        flash("Notification updated.", "success")
        return redirect(url_for("admin.notification_list"))

    @bp.post("/notifications/<notification_id>/toggle")
    @require_capability(MANAGE_NOTIFICATIONS)
    def notification_toggle(notification_id):
        current = notifications.get(notification_id)
        notifications.update(notification_id, is_active=not current.get("is_active"))
        return redirect(url_for("admin.notification_list"))

    @bp.post("/notifications/<notification_id>/delete")
    @require_capability(MANAGE_NOTIFICATIONS)
    def notification_delete(notification_id):
        notifications.delete(notification_id)
        flash("Notification deleted.", "success")
        return redirect(url_for("admin.notification_list"))

    # ---- photos -------------------------------------------------------

    @bp.get("/photos")
    @require_capability(MANAGE_PHOTOS)
    def photo_list():
        tab = request.args.get("tab", GALLERY)
        if tab not in (GALLERY, SLIDESHOW):
            tab = GALLERY
        images = photos.list_gallery() if tab == GALLERY else photos.list_slideshow()
        return render_template("admin/photos.html", tab=tab, images=images)

    @bp.post("/photos/upload")
    @require_capability(MANAGE_PHOTOS)
    def photo_upload():
        kind = request.form.get("kind", GALLERY)
        base_order = _int(request.form.get("display_order"))
        uploads = [u for u in (from_file_storage(f) for f in request.files.getlist("files")) if u]
        if not uploads:
            flash("Choose at least one image.", "error")
            return redirect(url_for("admin.photo_list", tab=kind))

        done = 0
        for index, upload in enumerate(uploads):
            try:
                photos.upload(
                    g.auth,
                    kind,
                    upload,
                    title=request.form.get("title", ""),
                    description=request.form.get("description", ""),
                    category=request.form.get("category", "general"),
                    display_order=base_order + index,
                )
                done += 1
            except PortalError as exc:
                flash(f"{upload.filename}: {exc.message}", "error")

        if done:
            flash(f"Uploaded {done} image(s).", "success")
        return redirect(url_for("admin.photo_list", tab=kind))

    @bp.post("/photos/delete")
    @require_capability(MANAGE_PHOTOS)
    def photo_delete():
        kind = request.form.get("kind", GALLERY)
        ids = request.form.getlist("ids")
        if not ids:
            flash("Select at least one image.", "error")
        else:
            deleted = photos.delete_many(kind, ids)
            flash(f"Deleted {deleted} {kind} image(s).", "success")
        return redirect(url_for("admin.photo_list", tab=kind))

    # ---- users (main admin only) -------------------------------------

    @bp.get("/users")
    @require_capability(MANAGE_ADMINS)
    def user_list():
        return render_template("admin/users.html", admins=directory.list_admins())

    @bp.route("/users/new", methods=["GET", "POST"])
    @require_capability(MANAGE_ADMINS)
    def user_create():
        if request.method == "GET":
            return render_template("admin/user_form.html", account=None, roles=ROLES)

        try:
            directory.create_admin(
                g.auth,
                userid=request.form.get("userid"),
                password=request.form.get("password"),
                role=request.form.get("role", SUB_ADMIN),
                notification_access=_checked("notification_access"),
                photo_access=_checked("photo_access"),
            )
        except PortalError as exc:
            flash(exc.message, "error")
            return render_template("admin/user_form.html", account=None, roles=ROLES), exc.status_code

        flash("User created.", "success")
        return redirect(url_for("admin.user_list"))

    @bp.route("/users/<admin_id>/edit", methods=["GET", "POST"])
    @require_capability(MANAGE_ADMINS)
    def user_edit(admin_id):
        account = directory.get(admin_id)
        if request.method == "GET":
            return render_template("admin/user_form.html", account=account, roles=ROLES)

        try:
            directory.update_admin(
                g.auth,
                admin_id,
                userid=request.form.get("userid"),
                role=request.form.get("role", account.role),
                notification_access=_checked("notification_access"),
                photo_access=_checked("photo_access"),
                is_active=_checked("is_active"),
                password=request.form.get("password") or None,
            )
        except PortalError as exc:
            flash(exc.message, "error")
            return render_template("admin/user_form.html", account=account, roles=ROLES), exc.status_code

        flash("User updated.", "success")
        return redirect(url_for("admin.user_list"))

    @bp.post("/users/<admin_id>/status")
    @require_capability(MANAGE_ADMINS)
    def user_status(admin_id):
        try:
            directory.set_active(g.auth, admin_id, _checked("is_active"))
        except PortalError as exc:
            flash(exc.message, "error")
        return redirect(url_for("admin.user_list"))

    @bp.post("/users/<admin_id>/delete")
    @require_capability(MANAGE_ADMINS)
    def user_delete(admin_id):
        try:
            directory.delete_admin(g.auth, admin_id)
            flash("User deleted.", "success")
        except PortalError as exc:
            flash(exc.message, "error")
        return redirect(url_for("admin.user_list"))

    @bp.app_context_processor
    def _admin_menu():
        auth = g.get("auth")
        if auth is None:
            return {"admin_menu": []}
        menu = [("Dashboard", "admin.dashboard", VIEW_DASHBOARD),
                ("Notifications", "admin.notification_list", MANAGE_NOTIFICATIONS),
                ("Photos", "admin.photo_list", MANAGE_PHOTOS),
                ("Users", "admin.user_list", MANAGE_ADMINS)]
        return {"admin_menu": [(label, endpoint) for label, endpoint, cap in menu if auth.can(cap)]}

    return bp
