# Commands (run with FLASK_APP=lawlaw):
# - flask seed
#   Create demo admin, seller, buyer, products and recipes (idempotent).
# - flask chat listen USER_ID [--conversation-id N]
#   Subscribe to the user's relay channel and print merged events.

import click
import json
import redis
from flask import current_app
from flask.cli import with_appcontext

from lawlaw.seed import seed_data
from lawlaw.services.chat_state import ConversationState
from lawlaw.services.relay_service import (
    EVENT_MESSAGE_DELETED,
    EVENT_NEW_MESSAGE,
    get_relay)


@click.command('seed')
@with_appcontext
def seed_command():
    """Create demo accounts, products and recipes."""
    seed_data(echo=click.echo)
    click.echo('Seed complete.')


@click.group('chat')
def chat_group():
    """Chat relay tools."""


@chat_group.command('listen')
@click.argument('user_id', type=int)
@click.option('--conversation-id', type=int, default=None,
              help='Only show events for this conversation')
@click.option('--timeout', type=float, default=1.0, show_default=True,
              help='Polling timeout in seconds')
@with_appcontext
def listen_command(user_id, conversation_id, timeout):
    """Print relay events for USER_ID until interrupted."""
    relay = get_relay()
    if not relay.enabled:
        raise click.ClickException(
            'RELAY_URL is not configured; nothing to listen to.')

    state = ConversationState(conversation_id=conversation_id)
    click.echo(
        f'Listening on {relay.channel_for(user_id)} '
        f'({current_app.config["RELAY_URL"]}), Ctrl+C to stop')
    try:
        for event in relay.listen(user_id, timeout=timeout):
            name = event.get('event')
            if name in (EVENT_NEW_MESSAGE, EVENT_MESSAGE_DELETED):
                if not state.apply_event(event):
                    continue
                click.echo(
                    f'[{name}] {len(state)} message(s) in view: '
                    f'{json.dumps(event.get("data"), ensure_ascii=False)}')
            elif conversation_id is None:
                click.echo(
                    f'[{name}] '
                    f'{json.dumps(event.get("data"), ensure_ascii=False)}')
    except redis.RedisError as e:
        raise click.ClickException(f'Relay connection failed: {e}')
    except KeyboardInterrupt:
        click.echo('Stopped.')


def register_commands(app):
    """Register CLI commands with the Flask app."""
    app.cli.add_command(seed_command)
    app.cli.add_command(chat_group)
