from __future__ import annotations

from flask import current_app, jsonify, request, send_from_directory, url_for
from flask_login import current_user

from ctrltab.api import api_bp
from ctrltab.extensions import db
from ctrltab.models import utcnow
from ctrltab.services.common import json_payload
from ctrltab.services.entities import EntityStore
from ctrltab.services.favicons import FaviconResolver
from ctrltab.services.security import api_auth_required
from ctrltab.services.uploads import store_icon
from ctrltab.services.users import UserDirectory


def _payload() -> dict:
    return json_payload(request)


def _favicon_resolver() -> FaviconResolver:
    config = current_app.config
    return FaviconResolver(
        timeout=config["FAVICON_FETCH_TIMEOUT"],
        max_bytes=config["FAVICON_MAX_BYTES"],
        service_url=config["FAVICON_SERVICE_URL"],
    )


def _store() -> EntityStore:
    return EntityStore(db.session, _favicon_resolver())


def _directory() -> UserDirectory:
    return UserDirectory(
        db.session, min_password_length=current_app.config["MIN_PASSWORD_LENGTH"]
    )


def _items(rows):
    return jsonify({"items": [row.as_dict() for row in rows]})


@api_bp.route("/health")
def health():
    return jsonify(
        {"status": "ok", "service": "ctrltab", "timestamp": utcnow().isoformat()}
    )


@api_bp.route("/collections", methods=["GET"])
@api_auth_required()
def collections_list():
    return _items(_store().list_collections(current_user.id))


@api_bp.route("/collections", methods=["POST"])
@api_auth_required()
def collections_create():
    collection = _store().create_collection(current_user.id, _payload())
    return jsonify(collection.as_dict()), 201


@api_bp.route("/collections/reorder", methods=["PUT"])
@api_auth_required()
def collections_reorder():
    store = _store()
    moved = store.reorder_collections(current_user.id, _payload().get("order"))
    items = store.list_collections(current_user.id)
    return jsonify(
        {"status": "reordered", "moved": moved, "items": [i.as_dict() for i in items]}
    )


@api_bp.route("/collections/<int:collection_id>", methods=["PUT"])
@api_auth_required()
def collections_update(collection_id: int):
    collection = _store().update_collection(collection_id, current_user.id, _payload())
    return jsonify(collection.as_dict())


@api_bp.route("/collections/<int:collection_id>", methods=["DELETE"])
@api_auth_required()
def collections_delete(collection_id: int):
    _store().delete_collection(collection_id, current_user.id)
    return jsonify({"status": "deleted"})


@api_bp.route("/collections/<int:collection_id>/sections", methods=["GET"])
@api_auth_required()
def sections_list(collection_id: int):
    return _items(_store().list_sections(collection_id, current_user.id))


@api_bp.route("/collections/<int:collection_id>/sections", methods=["POST"])
@api_auth_required()
def sections_create(collection_id: int):
    section = _store().create_section(collection_id, current_user.id, _payload())
    return jsonify(section.as_dict()), 201


@api_bp.route("/collections/<int:collection_id>/sections/reorder", methods=["PUT"])
@api_auth_required()
def sections_reorder(collection_id: int):
    store = _store()
    moved = store.reorder_sections(
        collection_id, current_user.id, _payload().get("order")
    )
    items = store.list_sections(collection_id, current_user.id)
    return jsonify(
        {"status": "reordered", "moved": moved, "items": [i.as_dict() for i in items]}
    )


@api_bp.route("/sections/<int:section_id>", methods=["PUT"])
@api_auth_required()
def sections_update(section_id: int):
    section = _store().update_section(section_id, current_user.id, _payload())
    return jsonify(section.as_dict())


@api_bp.route("/sections/<int:section_id>", methods=["DELETE"])
@api_auth_required()
def sections_delete(section_id: int):
    _store().delete_section(section_id, current_user.id)
    return jsonify({"status": "deleted"})


@api_bp.route("/sections/<int:section_id>/links", methods=["GET"])
@api_auth_required()
def links_list(section_id: int):
    return _items(_store().list_links(section_id, current_user.id))


@api_bp.route("/sections/<int:section_id>/links", methods=["POST"])
@api_auth_required()
def links_create(section_id: int):
    link = _store().create_link(section_id, current_user.id, _payload())
    return jsonify(link.as_dict()), 201


@api_bp.route("/sections/<int:section_id>/links/reorder", methods=["PUT"])
@api_auth_required()
def links_reorder(section_id: int):
    store = _store()
    moved = store.reorder_links(section_id, current_user.id, _payload().get("order"))
    items = store.list_links(section_id, current_user.id)
    return jsonify(
        {"status": "reordered", "moved": moved, "items": [i.as_dict() for i in items]}
    )


@api_bp.route("/links/<int:link_id>", methods=["PUT"])
@api_auth_required()
def links_update(link_id: int):
    link = _store().update_link(link_id, current_user.id, _payload())
    return jsonify(link.as_dict())


@api_bp.route("/links/<int:link_id>", methods=["DELETE"])
@api_auth_required()
def links_delete(link_id: int):
    _store().delete_link(link_id, current_user.id)
    return jsonify({"status": "deleted"})


@api_bp.route("/dashboard/<int:collection_id>", methods=["GET"])
@api_auth_required()
def dashboard(collection_id: int):
    return jsonify(_store().get_dashboard(collection_id, current_user.id))


@api_bp.route("/upload/icon", methods=["POST"])
@api_auth_required()
def upload_icon():
    filename = store_icon(
        request.files.get("file"),
        folder=current_app.config["UPLOAD_FOLDER"],
        max_bytes=current_app.config["MAX_ICON_BYTES"],
    )
    current_app.logger.info("user %s uploaded icon %s", current_user.id, filename)
    return jsonify({"path": url_for("api.uploaded_icon", filename=filename)}), 201


@api_bp.route("/uploads/icons/<path:filename>", methods=["GET"])
def uploaded_icon(filename: str):
    response = send_from_directory(current_app.config["UPLOAD_FOLDER"], filename)
    # Uploaded SVGs may carry script; never let it run in this origin.
    response.headers["Content-Security-Policy"] = "default-src 'none'; sandbox"
    response.headers["X-Content-Type-Options"] = "nosniff"
    return response


@api_bp.route("/admin/users", methods=["GET"])
@api_auth_required(admin=True)
def admin_list_users():
    return _items(_directory().list_users())


@api_bp.route("/admin/users", methods=["POST"])
@api_auth_required(admin=True)
def admin_create_user():
    payload = _payload()
    user = _directory().create_user(
        payload.get("username"),
        payload.get("password"),
        is_admin=payload.get("is_admin", False),
    )
    current_app.logger.info("admin %s created user %s", current_user.id, user.id)
    return jsonify(user.as_dict()), 201


@api_bp.route("/admin/users/<int:user_id>", methods=["PUT"])
@api_auth_required(admin=True)
def admin_update_user(user_id: int):
    user = _directory().update_user(current_user, user_id, _payload())
    return jsonify(user.as_dict())


@api_bp.route("/admin/users/<int:user_id>", methods=["DELETE"])
@api_auth_required(admin=True)
def admin_delete_user(user_id: int):
    _directory().delete_user(current_user, user_id)
    current_app.logger.info("admin %s deleted user %s", current_user.id, user_id)
    return jsonify({"status": "deleted"})
