import base64

import pytest

from app import create_app
from models import db, Category, Candidate, CategoryCandidate, MemberCode
from workflow import set_event_state

ADMIN_USER = "admin"
ADMIN_PASSWORD = "s3cret"


@pytest.fixture
def app(tmp_path):
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'test.db'}",
        "SQLALCHEMY_ENGINE_OPTIONS": {},
        "UPLOAD_FOLDER": str(tmp_path / "uploads"),
        "ADMIN_USER": ADMIN_USER,
        "ADMIN_PASSWORD": ADMIN_PASSWORD,
    })
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin_headers():
    token = base64.b64encode(f"{ADMIN_USER}:{ADMIN_PASSWORD}".encode()).decode()
    return {"Authorization": f"Basic {token}"}


@pytest.fixture
def seeded(app):
    """Two active categories, one inactive, four candidates (one inactive) and two codes"""
    with app.app_context():
        first = Category(name="Mejor Comandante", short_description="Lidera la partida", order=1)
        second = Category(name="Mejor Oficial", short_description="Lidera la escuadra", order=2)
        hidden = Category(name="Archivada", short_description="Fuera de uso", order=3, is_active=False)
        x = Candidate(display_name="Halcon")
        y = Candidate(display_name="Lobo")
        z = Candidate(display_name="Puma")
        retired = Candidate(display_name="Retirado", is_active=False)
        db.session.add_all([first, second, hidden, x, y, z, retired])
        db.session.add_all([MemberCode(code="CONDOR001"), MemberCode(code="CONDOR002")])
        db.session.commit()
        return {
            "cat_a": first.id,
            "cat_b": second.id,
            "cat_inactive": hidden.id,
            "x": x.id,
            "y": y.id,
            "z": z.id,
            "retired": retired.id,
        }


@pytest.fixture
def set_stage(app):
    def _set(state):
        with app.app_context():
            set_event_state(state)
    return _set


@pytest.fixture
def add_finalists(app):
    def _add(category_id, candidate_ids):
        with app.app_context():
            db.session.add_all([
                CategoryCandidate(category_id=category_id, candidate_id=candidate_id)
                for candidate_id in candidate_ids
            ])
            db.session.commit()
    return _add
