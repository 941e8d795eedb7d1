"""Schema management CLI commands."""

import click
from flask.cli import with_appcontext

from prisonrp.extensions import db
from prisonrp.services.schema import apply_schema, run_migrations, seed_defaults


@click.group('db')
def database_commands():
    """Database schema commands."""
    pass


@database_commands.command('init')
@click.option('--no-seed', is_flag=True, help='Skip default categories, announcement and demo staff')
@with_appcontext
def init_db(no_seed):
    """Create tables, apply column migrations and seed empty tables."""
    adapter = db.adapter
    statements = apply_schema(adapter)
    click.echo(f'Applied {statements} schema statement(s) on {adapter.backend_name}')

    added = run_migrations(adapter)
    click.echo(f'Added columns: {", ".join(added) if added else "none"}')

    if not no_seed:
        inserted = seed_defaults(adapter)
        for table, count in inserted.items():
            click.echo(f'  {table}: {count} row(s) seeded')

    click.echo(click.style('Database ready.', fg='green'))


@database_commands.command('migrate')
@with_appcontext
def migrate_db():
    """Run additive column migrations only."""
    added = run_migrations(db.adapter)
    if not added:
        click.echo('Schema is up to date.')
        return
    for column in added:
        click.echo(f'  + {column}')
    click.echo(click.style(f'Added {len(added)} column(s).', fg='green'))
