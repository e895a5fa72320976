from flask import flash, redirect, render_template, request, url_for
from flask_login import current_user, login_required, login_user, logout_user

from tabmark.auth import auth_bp
from tabmark.models import User


@auth_bp.before_app_request
def route_guard():
    path = request.path
    if path.startswith("/dashboard") and not current_user.is_authenticated:
        return redirect(url_for("auth.sign_in"))
    if path == "/" and current_user.is_authenticated:
        return redirect(url_for("web.dashboard"))
    return None


@auth_bp.route("/", methods=["GET", "POST"])
def sign_in():
    if request.method == "POST":
        email = (request.form.get("email") or "").strip().lower()
        password = request.form.get("password") or ""

        user = User.query.filter_by(email=email).first()
        if user and user.is_active and user.check_password(password):
            login_user(user)
            return redirect(url_for("web.dashboard"))
        flash("Invalid credentials.", "error")

    return render_template("sign_in.html")


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    logout_user()
    return redirect(url_for("auth.sign_in"))
