from __future__ import annotations

from flask import Flask

from sitepatch.config import SitePatchConfig
from sitepatch.patch.engine import PatchEngine
from sitepatch.store.db import Database
from sitepatch.store.migrations import run_migrations
from sitepatch.store.repositories import JobRepository


def create_app(
    db: Database | None = None,
    config: SitePatchConfig | None = None,
) -> Flask:
    """Create and configure the Flask app."""
    app = Flask(__name__)
    settings = config or SitePatchConfig()
    app.config["SITEPATCH"] = settings

    if db is None:
        db = Database(":memory:")
        db.connect()
        run_migrations(db)

    app.extensions["db"] = db
    app.extensions["job_repo"] = JobRepository(db)
    app.extensions["patch_engine"] = PatchEngine(protected_defaults=settings.protected_selectors)

    from sitepatch.web.routes.api import api_bp

    app.register_blueprint(api_bp, url_prefix="/api")

    return app
