"""Shared test fixtures for the Taskboard test suite.

Provides:
- app: Flask app configured for testing (in-memory SQLite, CSRF off)
- client / other_client: Flask test clients
- database: clean tables per test (created/dropped), autouse
- db_session: an app context + session for service-level tests
- seed_data: owner + other user, "Sprint 1" board with Todo/Doing/Done
- two_columns: board with column A [a1, a2, a3] and column B [b1, b2]

HTTP tests don't hold an app context open, so every request gets its own
`g` (Flask-Login keeps the current user there).
"""

import pytest
from werkzeug.security import generate_password_hash

from taskboard import create_app
from taskboard.extensions import db as _db
from taskboard.models.user import User
from taskboard.services import board_service

OWNER_EMAIL = "owner@taskboard.local"
OWNER_PASSWORD = "ownerpass1"
OTHER_EMAIL = "other@taskboard.local"
OTHER_PASSWORD = "otherpass1"


@pytest.fixture(scope="session")
def app():
    """Create the Flask application configured for testing."""
    app = create_app("testing")
    yield app


@pytest.fixture(autouse=True)
def database(app):
    """Create all tables before each test, drop after."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def db_session(app):
    """App context for calling services directly."""
    with app.app_context():
        yield _db.session
        _db.session.rollback()


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture
def other_client(app):
    """A second, independent test client (separate cookie jar)."""
    return app.test_client()


def _make_user(email, password, full_name):
    user = User(
        email=email,
        password_hash=generate_password_hash(password),
        full_name=full_name,
    )
    _db.session.add(user)
    _db.session.flush()
    return user


@pytest.fixture
def seed_data(app):
    """Seed an owner with a "Sprint 1" board, plus an unrelated user.

    Returns plain ids so tests can use them in any app context.
    """
    with app.app_context():
        owner = _make_user(OWNER_EMAIL, OWNER_PASSWORD, "Board Owner")
        other = _make_user(OTHER_EMAIL, OTHER_PASSWORD, "Someone Else")

        board = board_service.create_board(owner.id, "Sprint 1", "Two week sprint")
        todo, doing, done = [
            board_service.create_column(board.id, name)
            for name in ("Todo", "Doing", "Done")
        ]
        card = board_service.create_card(board.id, todo.id, "Fix bug", "Crash on save")

        _db.session.commit()

        return {
            "owner_id": owner.id,
            "other_id": other.id,
            "board_id": board.id,
            "todo_id": todo.id,
            "doing_id": doing.id,
            "done_id": done.id,
            "card_id": card.id,
        }


@pytest.fixture
def two_columns(app, seed_data):
    """A board with column A holding a1..a3 and column B holding b1..b2."""
    with app.app_context():
        board = board_service.create_board(seed_data["owner_id"], "Moves")
        col_a = board_service.create_column(board.id, "A")
        col_b = board_service.create_column(board.id, "B")
        ids = {"board_id": board.id, "A": col_a.id, "B": col_b.id}
        for name in ("a1", "a2", "a3"):
            ids[name] = board_service.create_card(board.id, col_a.id, name).id
        for name in ("b1", "b2"):
            ids[name] = board_service.create_card(board.id, col_b.id, name).id
        _db.session.commit()
        return ids
