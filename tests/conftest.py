import pytest

from prisonrp import create_app
from prisonrp.config import TestingConfig
from prisonrp.extensions import db
from prisonrp.models import StaffUser


@pytest.fixture()
def app(tmp_path):
    class Config(TestingConfig):
        DATABASE_PATH = str(tmp_path / 'rules.db')
        UPLOAD_FOLDER = str(tmp_path / 'uploads')

    app = create_app(Config)

    yield app

    app.extensions['prisonrp_storage'].close()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def ctx(app):
    with app.app_context():
        yield


def _create_staff(username: str, level: str, steam_id: str) -> StaffUser:
    result = db.run(
        "INSERT INTO staff_users (steam_id, username, permission_level, is_active) VALUES (%s, %s, %s, %s)",
        (steam_id, username, level, True),
    )
    return StaffUser.from_row(db.get("SELECT * FROM staff_users WHERE id = %s", (result.id,)))


@pytest.fixture()
def staff(app):
    """One account per permission level, keyed by level name."""
    with app.app_context():
        return {
            'editor': _create_staff('Eddie Editor', 'editor', '76561198000000101'),
            'moderator': _create_staff('Mona Moderator', 'moderator', '76561198000000102'),
            'admin': _create_staff('Ada Admin', 'admin', '76561198000000103'),
            'owner': _create_staff('Otto Owner', 'owner', '76561198000000104'),
        }


@pytest.fixture()
def category(app):
    with app.app_context():
        result = db.run(
            "INSERT INTO categories (letter_code, name, description, order_index) VALUES (%s, %s, %s, %s)",
            ('A', 'General Server Rules', 'Basic rules', 1),
        )
        return db.get("SELECT * FROM categories WHERE id = %s", (result.id,))


@pytest.fixture()
def login(client):
    """Put a staff member into the Flask-Login session of the test client."""
    def _login(user: StaffUser):
        with client.session_transaction() as sess:
            sess['_user_id'] = str(user.id)
            sess['_fresh'] = True
        return client
    return _login


@pytest.fixture()
def second_editor(app, staff):
    with app.app_context():
        return _create_staff('Erin Editor', 'editor', '76561198000000105')
