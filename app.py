# app.py
import logging
import os

from flask import Flask, jsonify

from investment_manager.config import Config
from investment_manager.errors import register_error_handlers
from investment_manager.extensions import db, init_extensions

# ===== Blueprints =====
from investment_manager.routes.admin_routes import admin_bp
from investment_manager.routes.auth_routes import auth_bp
from investment_manager.routes.investment_routes import investments_bp
from investment_manager.routes.investor_routes import investor_bp
from investment_manager.routes.structure_routes import structures_bp


# ---------- helpers ----------
def _normalize_sqlite_uri(app: Flask) -> None:
    """
    If SQLALCHEMY_DATABASE_URI points at a *relative* SQLite file, rewrite it to an
    absolute path under app.instance_path.
    """
    uri = app.config.get("SQLALCHEMY_DATABASE_URI", "")
    if not uri.startswith("sqlite:///"):
        return
    rel = uri[len("sqlite:///"):]
    if rel in ("", ":memory:") or os.path.isabs(rel):
        return
    os.makedirs(app.instance_path, exist_ok=True)
    app.config["SQLALCHEMY_DATABASE_URI"] = f"sqlite:///{os.path.join(app.instance_path, rel)}"
    app.logger.info("Normalized SQLite path -> %s", app.config["SQLALCHEMY_DATABASE_URI"])


def _seed_default_root(app: Flask) -> None:
    """
    Create the Root account exactly once (no-op if present or not configured).
    Env controls: DEFAULT_ROOT_EMAIL, DEFAULT_ROOT_PASSWORD
    """
    email = (app.config.get("DEFAULT_ROOT_EMAIL") or "").strip().lower()
    password = app.config.get("DEFAULT_ROOT_PASSWORD") or ""
    if not email or not password:
        return

    from investment_manager.models import User
    from investment_manager.roles import Role

    with app.app_context():
        if User.query.filter_by(email=email).first():
            return
        root = User(first_name="Root", last_name="", email=email, role=Role.ROOT, status="Active")
        root.set_password(password)
        db.session.add(root)
        db.session.commit()
        app.logger.info("Seeded Root user %s", email)


# =========================
#   App factory
# =========================
def create_app(config_object=Config) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config_object)

    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    logging.basicConfig(level=level)
    app.logger.setLevel(level)
    logging.getLogger("investment_manager").setLevel(level)

    _normalize_sqlite_uri(app)

    # db / migrate / jwt / cors
    init_extensions(app)
    register_error_handlers(app)

    import investment_manager.models  # noqa: F401  (metadata must be loaded before create_all)

    with app.app_context():
        db.create_all()
    _seed_default_root(app)

    @app.get("/health")
    def health():
        return jsonify(status="ok")

    app.register_blueprint(auth_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(structures_bp)
    app.register_blueprint(investments_bp)
    app.register_blueprint(investor_bp)

    app.logger.debug("Routes: %s", sorted(rule.rule for rule in app.url_map.iter_rules()))
    return app


if __name__ == "__main__":
    app = create_app()
    app.run(host="localhost", port=int(os.getenv("PORT", "5001")), debug=True)
