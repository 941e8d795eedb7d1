import pytest

from prisonrp.extensions import db


@pytest.fixture()
def runner(app):
    return app.test_cli_runner()


def test_db_init_seeds_defaults_once(runner, app):
    result = runner.invoke(args=['db', 'init'])
    assert result.exit_code == 0
    assert 'categories: 7 row(s) seeded' in result.output

    again = runner.invoke(args=['db', 'init'])
    assert 'categories: 0 row(s) seeded' in again.output
    with app.app_context():
        assert db.get("SELECT COUNT(*) AS count FROM categories")['count'] == 7


def test_db_migrate_reports_up_to_date(runner):
    result = runner.invoke(args=['db', 'migrate'])
    assert result.exit_code == 0
    assert 'Schema is up to date.' in result.output


class TestStaffCommands:
    def test_add_and_list(self, runner):
        result = runner.invoke(args=[
            'staff', 'add', '--username', 'Warden', '--level', 'owner', '--steam-id', '76561198000000042',
        ])
        assert result.exit_code == 0
        assert 'Level: owner' in result.output

        listing = runner.invoke(args=['staff', 'list'])
        assert 'Warden [76561198000000042]' in listing.output

    def test_add_rejects_bad_steam_id(self, runner):
        result = runner.invoke(args=['staff', 'add', '--username', 'Bad', '--steam-id', '42'])
        assert result.exit_code == 1
        assert 'SteamID64' in result.output

    def test_set_level(self, runner, staff):
        result = runner.invoke(args=['staff', 'set-level', str(staff['editor'].id), 'moderator'])
        assert result.exit_code == 0
        listing = runner.invoke(args=['staff', 'list'])
        assert 'moderator  Eddie Editor' in listing.output


def test_seed_sample_rules(runner, app):
    runner.invoke(args=['db', 'init', '--no-seed'])
    with app.app_context():
        db.run(
            "INSERT INTO categories (letter_code, name, order_index) VALUES (%s, %s, %s)",
            ('A', 'General Server Rules', 1),
        )

    result = runner.invoke(args=['seed', 'sample-rules'])
    assert result.exit_code == 0
    assert 'Skipping B: category not found' in result.output
    assert 'A.1.2' in result.output

    with app.app_context():
        rows = db.all("SELECT full_code, status FROM rules ORDER BY id")
    assert rows[0] == {'full_code': 'A.1', 'status': 'approved'}
    assert len(rows) == 6

    rerun = runner.invoke(args=['seed', 'sample-rules'])
    assert 'Skipping A: already has 6 rule(s)' in rerun.output


def test_publish_due_with_nothing_scheduled(runner):
    result = runner.invoke(args=['announcements', 'publish-due'])
    assert result.exit_code == 0
    assert 'No scheduled announcements are due.' in result.output
