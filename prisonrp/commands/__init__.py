"""CLI commands for the rules site."""

from .announcements import announcement_commands
from .database import database_commands
from .seed import seed_commands
from .staff import staff_commands


def register_commands(app):
    """Register all CLI command groups with the Flask app."""
    app.cli.add_command(database_commands)
    app.cli.add_command(staff_commands)
    app.cli.add_command(announcement_commands)
    app.cli.add_command(seed_commands)
