"""CLI interface for cfquery."""

from __future__ import annotations

import logging
import sys
from contextlib import contextmanager

import click

from . import __version__
from .catalog import get_models, resolve_default_model
from .client import WorkersAIClient
from .config import CONFIG_PATH, DATA_DIR, DB_PATH, load_settings
from .conversations import ConversationManager
from .errors import CfQueryError
from .models import Conversation, format_model_name
from .storage import ConversationStore, KeyValueStore, ModelCache

TITLE_CHARS = 60
PREVIEW_CHARS = 70
DESCRIPTION_CHARS = 72


@contextmanager
def _reported_errors():
    """Turn errors from below the CLI into a clean error message."""
    try:
        yield
    except CfQueryError as exc:
        raise click.ClickException(str(exc)) from exc


def _manager(kv: KeyValueStore, client: WorkersAIClient | None = None) -> ConversationManager:
    manager = ConversationManager(ConversationStore(kv), client)
    if manager.recovered_from_corruption:
        click.echo(
            "Warning: Failed to load conversation history. Starting fresh.", err=True
        )
    return manager


def _short(conversation: Conversation) -> str:
    return conversation.id[:8]


def _shorten(text: str, limit: int = TITLE_CHARS) -> str:
    text = " ".join(text.split())
    return text if len(text) <= limit else text[: limit - 3] + "..."


def _mask(secret: str) -> str:
    if not secret:
        return click.style("(not set)", fg="red")
    return secret[:4] + "*" * 8


@click.group()
@click.version_option(version=__version__, prog_name="cfquery")
@click.option("-v", "--verbose", is_flag=True, help="Log debug output to stderr")
def cli(verbose: bool):
    """cfquery: ask Cloudflare Workers AI models from your terminal.

    Set CLOUDFLARE_ACCOUNT_ID and CLOUDFLARE_API_TOKEN (or write them to the
    config file shown by `cfquery config`), then ask away. Every answer is
    saved as a conversation you can continue later.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )


@cli.command()
@click.argument("prompt", nargs=-1, required=True)
@click.option("-m", "--model", help="Model id, e.g. @cf/meta/llama-3.1-8b-instruct")
def ask(prompt: tuple[str, ...], model: str | None):
    """Ask a question and start a new conversation.

    Example:
        cfquery ask "Explain durable objects in one paragraph"
    """
    with _reported_errors():
        settings = load_settings()
        with KeyValueStore(DB_PATH) as kv, WorkersAIClient(settings) as client:
            if not model:
                models, _ = get_models(client, ModelCache(kv))
                model = resolve_default_model(models, settings.default_model)
            manager = _manager(kv, client)
            click.echo(f"Querying {format_model_name(model)}...", err=True)
            conversation = manager.ask(" ".join(prompt), model)

    click.echo(conversation.last_answer)
    click.echo()
    click.echo(
        click.style(f"Continue with: cfquery reply {_short(conversation)} ...", dim=True),
        err=True,
    )


@cli.command()
@click.argument("conversation_id")
@click.argument("question", nargs=-1, required=True)
def reply(conversation_id: str, question: tuple[str, ...]):
    """Ask a follow-up question in an existing conversation."""
    with _reported_errors():
        settings = load_settings()
        with KeyValueStore(DB_PATH) as kv, WorkersAIClient(settings) as client:
            manager = _manager(kv, client)
            conversation = manager.get(conversation_id)
            click.echo(f"Asking {format_model_name(conversation.model)}...", err=True)
            chat = manager.follow_up(conversation.id, " ".join(question))

    click.echo(chat.answer)


@cli.command("list")
def list_cmd():
    """List saved conversations, pinned first."""
    with _reported_errors(), KeyValueStore(DB_PATH) as kv:
        manager = _manager(kv)
        pinned, recent = manager.pinned(), manager.recent()

    if not pinned and not recent:
        click.echo("No conversations yet. Start one with:")
        click.echo('  cfquery ask "your question"')
        return

    for label, group in (("Pinned", pinned), ("Recent", recent)):
        if not group:
            continue
        click.echo(click.style(f"{label} ({len(group)})", bold=True))
        for conv in group:
            updated = conv.updated_at.astimezone().strftime("%Y-%m-%d %H:%M")
            click.echo(
                f"  {_short(conv)}  {_shorten(conv.title)}"
                f"  [{format_model_name(conv.model)}]"
                f"  {len(conv.chats)} exchanges  {updated}"
            )
            if conv.last_answer:
                click.echo(click.style(f"            {_shorten(conv.preview, PREVIEW_CHARS)}", dim=True))
        click.echo()


@cli.command()
@click.argument("conversation_id")
def show(conversation_id: str):
    """Print the full transcript of a conversation."""
    with _reported_errors(), KeyValueStore(DB_PATH) as kv:
        conversation = _manager(kv).get(conversation_id)

    click.echo(click.style(conversation.title, bold=True))
    click.echo(f"  Model:    {format_model_name(conversation.model)} ({conversation.model})")
    click.echo(f"  Started:  {conversation.created_at.astimezone():%Y-%m-%d %H:%M}")
    if conversation.pinned:
        click.echo("  Pinned")
    for chat in conversation.chats:
        click.echo()
        click.echo(click.style(f"Q: {chat.question}", fg="cyan", bold=True))
        click.echo()
        click.echo(chat.answer)


@cli.command()
@click.argument("conversation_id")
def pin(conversation_id: str):
    """Pin or unpin a conversation."""
    with _reported_errors(), KeyValueStore(DB_PATH) as kv:
        conversation = _manager(kv).toggle_pin(conversation_id)

    state = "pinned" if conversation.pinned else "unpinned"
    click.echo(f"Conversation {_short(conversation)} {state}")


@cli.command()
@click.argument("conversation_id")
def delete(conversation_id: str):
    """Delete a conversation."""
    with _reported_errors(), KeyValueStore(DB_PATH) as kv:
        conversation = _manager(kv).delete(conversation_id)

    click.echo(f"Conversation {_short(conversation)} removed")


@cli.command()
@click.confirmation_option(prompt="This will delete all conversations. Are you sure?")
def clear():
    """Delete all saved conversations."""
    with _reported_errors(), KeyValueStore(DB_PATH) as kv:
        _manager(kv).clear()

    click.echo("All conversations cleared")


@cli.command()
def models():
    """List available text generation models."""
    with _reported_errors():
        settings = load_settings()
        with KeyValueStore(DB_PATH) as kv, WorkersAIClient(settings) as client:
            cache = ModelCache(kv)
            available, source = get_models(client, cache)
            cached_at = cache.cached_at() if source == "cache" else None

    if cached_at is not None:
        click.echo(
            "Warning: could not fetch models, showing the list cached on "
            f"{cached_at.astimezone():%Y-%m-%d %H:%M}.",
            err=True,
        )
    elif source != "api":
        click.echo(
            f"Warning: could not fetch models, showing {source} list.", err=True
        )

    default = resolve_default_model(available, settings.default_model)
    for model in available:
        marker = "*" if model.name == default else " "
        click.echo(f"{marker} {model.title:<40} {model.name}")
        if model.description:
            click.echo(click.style(f"    {_shorten(model.description, DESCRIPTION_CHARS)}", dim=True))


@cli.command()
def config():
    """Show where settings are read from and what is configured."""
    with _reported_errors():
        settings = load_settings()

    click.echo()
    click.echo(click.style("cfquery configuration", bold=True))
    click.echo(f"  Config file:    {CONFIG_PATH}")
    click.echo(f"  Data:           {DATA_DIR}")
    click.echo(f"  Account ID:     {settings.account_id or _mask('')}")
    click.echo(f"  API token:      {_mask(settings.api_token)}")
    click.echo(f"  Default model:  {settings.default_model or '(first available)'}")
    click.echo(f"  Timeout:        {settings.timeout:g}s")
    click.echo()
    click.echo("Environment variables CLOUDFLARE_ACCOUNT_ID, CLOUDFLARE_API_TOKEN,")
    click.echo("CFQUERY_DEFAULT_MODEL and CFQUERY_TIMEOUT override the config file.")
    click.echo()
