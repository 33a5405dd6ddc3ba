from __future__ import annotations

import pytest

from sitepatch.config import SitePatchConfig
from sitepatch.model.job import JobPayload
from sitepatch.store.db import Database
from sitepatch.store.migrations import run_migrations
from sitepatch.store.repositories import JobRepository

SAMPLE_HTML = (
    "<html><head><title>Cafe</title></head><body>"
    '<nav><a href="/">Home</a></nav>'
    '<main>'
    '<section data-section="hero"><h1>Welcome</h1></section>'
    '<section data-section="testimonials"><p class="quote">Great coffee</p></section>'
    "</main>"
    "</body></html>"
)

SAMPLE_CSS = ".quote { color: red; }"


@pytest.fixture
def db():
    """Create a fresh in-memory database with migrations for each test."""
    database = Database(":memory:")
    database.connect()
    run_migrations(database)
    yield database
    database.close()


@pytest.fixture
def file_db(tmp_path):
    """A migrated database backed by a real file, for cross-connection tests."""
    path = str(tmp_path / "sitepatch.db")
    database = Database(path)
    database.connect()
    run_migrations(database)
    yield database
    database.close()


@pytest.fixture
def jobs(db) -> JobRepository:
    return JobRepository(db)


@pytest.fixture
def config() -> SitePatchConfig:
    return SitePatchConfig(
        db_path=":memory:",
        model_chain=("A", "B", "C"),
        oracle_timeout=2.0,
        poll_interval=0.0,
        max_ops=50,
    )


@pytest.fixture
def payload() -> JobPayload:
    return JobPayload(
        prompt="Make the testimonial warmer",
        files={"index.html": SAMPLE_HTML, "styles/style.css": SAMPLE_CSS},
    )


@pytest.fixture
def app(db, config):
    """Create a Flask app for testing."""
    from sitepatch.web.app import create_app

    application = create_app(db=db, config=config)
    application.config["TESTING"] = True
    return application


@pytest.fixture
def client(app):
    """Create a Flask test client."""
    return app.test_client()
