"""Data seeding CLI commands."""

import click
from flask.cli import with_appcontext

from prisonrp.extensions import db
from prisonrp.services.rules import RuleService

from .system import SYSTEM_ACTOR

# letter code -> [(title, content, [sub-rule content, ...]), ...]
SAMPLE_RULES = {
    'A': [
        ('No Random Deathmatch (RDM)',
         'Killing another player without a valid roleplay reason is not allowed.',
         ['Guards may only shoot prisoners who are armed, escaping or attacking.',
          'Revenge kills after respawning count as RDM.']),
        ('No Metagaming',
         'Information gained outside of roleplay may not be used in character.',
         ['Using voice chat from other servers or Discord counts as metagaming.']),
        ('Respect all players and staff',
         'Harassment, slurs and targeted abuse result in removal from the server.',
         []),
    ],
    'B': [
        ('Lockdown procedures',
         'During a lockdown every prisoner must return to their cell immediately.',
         ['Prisoners outside their cell after 60 seconds may be detained.',
          'Lockdowns may last at most 5 minutes.']),
        ('Yard time',
         'Prisoners may use the yard when the warden announces yard time.',
         []),
    ],
    'C': [
        ('Use of force',
         'Guards must give a verbal warning before using force unless under attack.',
         ['Tasers are preferred over lethal weapons for non-violent prisoners.']),
    ],
    'F': [
        ('Contraband',
         'Weapons, phones and lockpicks are contraband inside the prison walls.',
         ['Guards may confiscate contraband found during a search.']),
    ],
}


@click.group('seed')
def seed_commands():
    """Data seeding commands."""
    pass


@seed_commands.command('sample-rules')
@click.option('--force', is_flag=True, help='Seed categories that already contain rules')
@with_appcontext
def seed_sample_rules(force):
    """Seed approved sample rules and sub-rules into the default categories.

    Example:
        flask seed sample-rules
    """
    created = 0
    for letter, rules in SAMPLE_RULES.items():
        category = db.get("SELECT id, name FROM categories WHERE letter_code = %s", (letter,))
        if not category:
            click.echo(click.style(f'Skipping {letter}: category not found', fg='yellow'))
            continue
        existing = db.get(
            "SELECT COUNT(*) AS count FROM rules WHERE category_id = %s", (category['id'],)
        )['count']
        if existing and not force:
            click.echo(f'Skipping {letter}: already has {existing} rule(s)')
            continue

        click.echo(f'Seeding {letter} - {category["name"]}...')
        for title, content, sub_rules in rules:
            rule = RuleService.create_rule(SYSTEM_ACTOR, category['id'], title, content, mode='submit')
            created += 1
            click.echo(f'  {rule["full_code"]} {title}')
            for sub_content in sub_rules:
                sub = RuleService.create_rule(
                    SYSTEM_ACTOR, category['id'], None, sub_content,
                    parent_rule_id=rule['id'], mode='submit',
                )
                created += 1
                click.echo(f'    {sub["full_code"]}')

    click.echo(click.style(f'✓ Created {created} rule(s).', fg='green'))
