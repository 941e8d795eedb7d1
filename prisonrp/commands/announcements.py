"""Announcement CLI commands."""

import click
from flask.cli import with_appcontext

from prisonrp.services.announcements import AnnouncementService


@click.group('announcements')
def announcement_commands():
    """Announcement commands."""
    pass


@announcement_commands.command('publish-due')
@with_appcontext
def publish_due():
    """Publish approved scheduled announcements whose time has come.

    Intended to be run from cron, e.g. every five minutes.
    """
    published = AnnouncementService.publish_due()
    if not published:
        click.echo('No scheduled announcements are due.')
        return
    for item in published:
        click.echo(f'  • #{item["id"]} {item["title"]} (scheduled for {item["scheduled_for"]})')
    click.echo(click.style(f'Published {len(published)} announcement(s).', fg='green'))
