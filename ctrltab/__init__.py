from flask import Flask, jsonify
from sqlalchemy import event
from werkzeug.exceptions import RequestEntityTooLarge

from ctrltab.api import api_bp
from ctrltab.auth import auth_bp
from ctrltab.config import DEFAULT_ADMIN_PASSWORD, DEFAULT_SECRET_KEY, Config
from ctrltab.extensions import db, login_manager, migrate
from ctrltab.schema_migrations import add_multi_user_columns
from ctrltab.services.errors import CtrlTabError
from ctrltab.services.users import UserDirectory


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys = ON")
    cursor.close()


def _warn_insecure_defaults(app):
    if app.testing:
        return
    if app.config["SECRET_KEY"] == DEFAULT_SECRET_KEY:
        app.logger.warning(
            "SECRET_KEY is the built-in default; set it before deploying"
        )
    if app.config["ADMIN_PASSWORD"] == DEFAULT_ADMIN_PASSWORD:
        app.logger.warning(
            "ADMIN_PASSWORD is the built-in default; set it before deploying"
        )


def seed_admin(app):
    directory = UserDirectory(
        db.session, min_password_length=app.config["MIN_PASSWORD_LENGTH"]
    )
    return directory.seed_admin(
        app.config["ADMIN_USERNAME"], app.config["ADMIN_PASSWORD"]
    )


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)

    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    app.register_blueprint(auth_bp)
    app.register_blueprint(api_bp)

    @app.errorhandler(CtrlTabError)
    def handle_ctrltab_error(exc):
        db.session.rollback()
        return jsonify({"error": exc.message}), exc.status_code

    @app.errorhandler(RequestEntityTooLarge)
    def handle_too_large(exc):
        return jsonify({"error": "upload is too large"}), 413

    @app.cli.command("init-db")
    def init_db_command():
        db.create_all()
        seed_admin(app)
        print("Initialized ctrltab database.")

    with app.app_context():
        if db.engine.dialect.name == "sqlite":
            event.listen(db.engine, "connect", _enable_sqlite_foreign_keys)
        add_multi_user_columns()
        db.create_all()
        seed_admin(app)

    _warn_insecure_defaults(app)
    return app
