from flask import request, jsonify
from flask_login import login_user, logout_user, login_required, current_user

from geoqueue.blueprints.auth import auth_bp
from geoqueue.models.user import User


@auth_bp.post("/login")
def login_post():
    data = request.get_json(silent=True) or {}
    username = (data.get("username") or "").strip().lower()
    password = data.get("password") or ""

    user = User.query.filter_by(username=username, is_active=True).first()
    if not user or not user.check_password(password):
        return jsonify({"error": "Invalid credentials"}), 401

    login_user(user)
    return jsonify({"ok": True, "user_id": user.id, "role": user.role, "organization_id": user.organization_id})


@auth_bp.post("/logout")
@login_required
def logout():
    logout_user()
    return jsonify({"ok": True})


@auth_bp.get("/me")
@login_required
def me():
    return jsonify({
        "id": current_user.id,
        "username": current_user.username,
        "role": current_user.role,
        "organization_id": current_user.organization_id,
    })
