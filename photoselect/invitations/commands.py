"""
CLI commands for invitation maintenance.

    flask --app wsgi expire-invitations
"""

import click
from flask import current_app
from flask.cli import with_appcontext

from photoselect.db import connect, database_path
from photoselect.invitations.models import expire_overdue_invitations


@click.command('expire-invitations')
@with_appcontext
def expire_invitations_command():
    """Mark overdue pending invitations as expired."""
    conn = connect(database_path(current_app))
    try:
        count = expire_overdue_invitations(conn)
    finally:
        conn.close()
    click.echo(f'Expired {count} invitation(s).')


def register_commands(app) -> None:
    app.cli.add_command(expire_invitations_command)
