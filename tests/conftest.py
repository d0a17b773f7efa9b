"""
Shared pytest fixtures for the Deal Process Engine test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - org_headers: X-Organization-Id header for the default test organization
    - deal_schema: "deals" record schema with a governed ``stage`` select field
    - stage_schema: the same schema as an in-memory StaticSchemaProvider
"""

import pytest

from dealflow import create_app
from dealflow.engine.types import StaticSchemaProvider
from dealflow.models import db as _db
from dealflow.services import schema_service

TEST_ORG = "org-test"

STAGE_OPTIONS = [
    {"value": "prospecting", "label": "Prospecting", "color": "#94a3b8"},
    {"value": "qualification", "label": "Qualification", "color": "#60a5fa"},
    {"value": "proposal", "label": "Proposal", "color": "#a78bfa"},
    {"value": "negotiation", "label": "Negotiation", "color": "#f59e0b"},
    {"value": "closing", "label": "Closing", "color": "#10b981"},
]

DEAL_FIELDS = [
    {"field_key": "title", "field_label": "Title", "field_type": "text", "sort_order": 0},
    {
        "field_key": "stage",
        "field_label": "Stage",
        "field_type": "select",
        "options": STAGE_OPTIONS,
        "sort_order": 1,
    },
    {"field_key": "value", "field_label": "Deal Value", "field_type": "currency", "sort_order": 2},
    {
        "field_key": "expected_close_date",
        "field_label": "Expected Close Date",
        "field_type": "date",
        "sort_order": 3,
    },
    {
        "field_key": "tags",
        "field_label": "Tags",
        "field_type": "multi-select",
        "options": [{"value": "hot"}, {"value": "renewal"}],
        "sort_order": 4,
    },
    {
        "field_key": "created_at",
        "field_label": "Created",
        "field_type": "date",
        "is_editable": False,
        "sort_order": 5,
    },
]


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def org_headers():
    return {"X-Organization-Id": TEST_ORG}


# ── Schema fixtures ──────────────────────────────────────────────────────


@pytest.fixture()
def deal_schema():
    """Persist the "deals" field definitions and return them keyed by field_key."""
    return {
        f["field_key"]: schema_service.create_field_definition("deals", f)
        for f in DEAL_FIELDS
    }


@pytest.fixture()
def stage_schema():
    """In-memory schema equivalent to ``deal_schema`` for engine-level tests."""
    return StaticSchemaProvider([
        {"key": f["field_key"], "label": f["field_label"], "type": f["field_type"],
         "options": f.get("options", []), "editable": f.get("is_editable", True)}
        for f in DEAL_FIELDS
    ])
