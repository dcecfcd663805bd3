from flask import Blueprint, jsonify, request
from flask_login import login_user, logout_user, login_required, current_user

from vesitrail.models import User
from vesitrail.utils import request_data

bp = Blueprint("auth", __name__)


def _user_dict(user):
    return {
        "id": user.id,
        "email": user.email,
        "name": user.full_name,
        "role": user.role,
        "role_display": user.role_display,
    }


@bp.route("/login", methods=["POST"])
def login():
    data = request_data(request)
    email = (data.get("email") or "").strip()
    password = data.get("password") or ""

    user = User.query.filter_by(email=email).first()

    if user and user.is_active and user.check_password(password):
        login_user(user)
        return jsonify(_user_dict(user))

    return jsonify(error="Invalid email or password", type="AUTH_ERROR", field=None), 401


@bp.route("/logout", methods=["POST"])
@login_required
def logout():
    logout_user()
    return jsonify(ok=True)


@bp.route("/me")
@login_required
def me():
    return jsonify(_user_dict(current_user))
