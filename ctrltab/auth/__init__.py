from flask import Blueprint

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")

from ctrltab.auth import routes  # noqa: E402,F401
