"""Staff account CLI commands."""

import click
from flask.cli import with_appcontext

from prisonrp.errors import PrisonRPError
from prisonrp.extensions import db
from prisonrp.models import PermissionLevel
from prisonrp.services.staff import StaffService

from .system import SYSTEM_ACTOR

LEVELS = [level.value for level in PermissionLevel]


@click.group('staff')
def staff_commands():
    """Staff account commands."""
    pass


@staff_commands.command('add')
@click.option('--username', required=True, help='Display name')
@click.option('--level', type=click.Choice(LEVELS), default='editor', show_default=True)
@click.option('--steam-id', help='17-digit SteamID64')
@click.option('--discord-id', help='Discord user id')
@with_appcontext
def add_staff(username, level, steam_id, discord_id):
    """Register a staff member so they can log in.

    Example:
        flask staff add --username Warden --level owner --steam-id 76561198000000042
    """
    try:
        user = StaffService.create_user(SYSTEM_ACTOR, username, level, steam_id=steam_id, discord_id=discord_id)
    except PrisonRPError as e:
        click.echo(click.style(f'Error: {e.message}', fg='red'))
        raise SystemExit(1)

    click.echo(click.style('Staff member created successfully!', fg='green'))
    click.echo(f'  ID: {user["id"]}')
    click.echo(f'  Username: {user["username"]}')
    click.echo(f'  Level: {user["permission_level"]}')


@staff_commands.command('list')
@click.option('--all', 'include_inactive', is_flag=True, help='Include deactivated accounts')
@with_appcontext
def list_staff(include_inactive):
    """List staff accounts."""
    rows = db.all("SELECT * FROM staff_users ORDER BY id")
    shown = 0
    for row in rows:
        if not row['is_active'] and not include_inactive:
            continue
        identity = row['steam_id'] or f'discord:{row["discord_id"]}'
        state = '' if row['is_active'] else ' (inactive)'
        click.echo(f'{row["id"]:>4}  {row["permission_level"]:<10} {row["username"]} [{identity}]{state}')
        shown += 1
    if not shown:
        click.echo('No staff accounts found.')


@staff_commands.command('set-level')
@click.argument('user_id', type=int)
@click.argument('level', type=click.Choice(LEVELS))
@with_appcontext
def set_level(user_id, level):
    """Change a staff member's permission level."""
    try:
        user = StaffService.update_user(SYSTEM_ACTOR, user_id, permission_level=level)
    except PrisonRPError as e:
        click.echo(click.style(f'Error: {e.message}', fg='red'))
        raise SystemExit(1)
    click.echo(click.style(f'{user["username"]} is now {user["permission_level"]}.', fg='green'))
