from flask import current_app, jsonify, request
from flask_login import current_user

from ctrltab.auth import auth_bp
from ctrltab.extensions import db
from ctrltab.services.common import json_payload
from ctrltab.services.security import api_auth_required, issue_identity_token
from ctrltab.services.users import UserDirectory


def _directory() -> UserDirectory:
    return UserDirectory(
        db.session, min_password_length=current_app.config["MIN_PASSWORD_LENGTH"]
    )


@auth_bp.route("/login", methods=["POST"])
def login():
    payload = json_payload(request)
    user = _directory().authenticate(payload.get("username"), payload.get("password"))
    token = issue_identity_token(current_app.config["SECRET_KEY"], user.id)
    return jsonify({"token": token, "user": user.as_dict()})


@auth_bp.route("/verify", methods=["GET"])
@api_auth_required()
def verify():
    return jsonify({"valid": True, "user": current_user.as_dict()})


@auth_bp.route("/change-password", methods=["POST"])
@api_auth_required()
def change_password():
    payload = json_payload(request)
    _directory().change_password(
        current_user, payload.get("current_password"), payload.get("new_password")
    )
    current_app.logger.info("user %s changed their password", current_user.id)
    return jsonify({"status": "updated"})


@auth_bp.route("/preferences", methods=["GET"])
@api_auth_required()
def preferences_get():
    return jsonify(_directory().get_preferences(current_user))


@auth_bp.route("/preferences", methods=["PUT"])
@api_auth_required()
def preferences_update():
    return jsonify(_directory().update_preferences(current_user, json_payload(request)))
