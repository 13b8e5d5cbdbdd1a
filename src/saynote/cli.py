"""CLI entry point for saynote.

A developer tool around the library: pages live in
``<data_dir>/pages.json`` and undo/redo history in ``<data_dir>/history/``.
"""

import asyncio
from pathlib import Path
from typing import Optional, Tuple

import click

from saynote.config.loader import load_config
from saynote.document.serialization import serialize_document
from saynote.interpreter.interpreter import CommandInterpreter
from saynote.models.blocks import Block, BlockType, Document
from saynote.models.config import Config
from saynote.models.intents import CreateLinkedPage
from saynote.services.exceptions import PageNotFoundError, PersistenceError
from saynote.services.kv_store import FileKeyValueStore
from saynote.services.page_graph import build_page_tree
from saynote.services.page_store import JsonFilePageStore
from saynote.session.session import EditSession
from saynote.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)

_PREFIXES = {
    BlockType.BULLET_LIST_ITEM: "- ",
    BlockType.NUMBERED_LIST_ITEM: "1. ",
    BlockType.QUOTE: "> ",
}


def render_block(block: Block) -> str:
    """One-line plain-text rendering of a block."""
    if block.is_page_link:
        return f"{block.props.get('pageIcon', '')} {block.props.get('pageTitle', '')} -> {block.link_page_id}"
    if block.type is BlockType.HEADING:
        return "#" * block.props.get("level", 1) + " " + block.text
    if block.type is BlockType.TODO_LIST_ITEM:
        return ("[x] " if block.props.get("checked") else "[ ] ") + block.text
    if block.type is BlockType.CODE:
        return f"`{block.text}`"
    return _PREFIXES.get(block.type, "") + block.text


def render_document(document: Document, depth: int = 0) -> str:
    """Plain-text outline of a document, children indented."""
    lines = []
    for block in document:
        lines.append("  " * depth + render_block(block))
        if block.children:
            lines.append(render_document(block.children, depth + 1))
    return "\n".join(lines)


def _load_config(ctx: click.Context) -> Config:
    config_path = ctx.obj.get("config_path") if ctx.obj else None
    try:
        config = load_config(config_path)
    except PermissionError as e:
        logger.error("config_permission_error", path=str(config_path))
        raise click.ClickException(str(e))
    except Exception as e:
        logger.error("config_validation_error", error=str(e))
        raise click.ClickException(f"Configuration validation failed:\n{e}")
    logger.info("config_loaded", data_dir=str(config.data_path))
    return config


def _open_stores(config: Config) -> Tuple[JsonFilePageStore, Optional[FileKeyValueStore]]:
    try:
        page_store = JsonFilePageStore(config.data_path / "pages.json")
    except PersistenceError as e:
        raise click.ClickException(str(e))
    history_store = FileKeyValueStore(config.data_path / "history") if config.history.persist else None
    return page_store, history_store


def _build_interpreter(config: Config) -> CommandInterpreter:
    if config.llm is None or not config.interpreter.use_llm:
        return CommandInterpreter()

    from saynote.services.llm_client import LLMClient, LLMIntentProvider

    provider = LLMIntentProvider(LLMClient(config.llm))
    return CommandInterpreter(provider, timeout=config.interpreter.timeout_seconds)


def _echo_notice(notice) -> None:
    suffix = f": {notice.message}" if notice.message else ""
    click.echo(f"[{notice.level}] {notice.title}{suffix}", err=True)


async def _open_session(config: Config, page_id: str) -> EditSession:
    page_store, history_store = _open_stores(config)
    try:
        return await EditSession.open(
            page_id,
            page_store,
            interpreter=_build_interpreter(config),
            history_store=history_store,
            max_history=config.history.max_entries,
            autosave_delay=config.editor.autosave_delay_seconds,
            on_notice=_echo_notice,
        )
    except PageNotFoundError as e:
        raise click.ClickException(str(e))


async def _close(session: EditSession) -> None:
    try:
        await session.close()
    except PersistenceError as e:
        raise click.ClickException(f"Changes could not be saved: {e}")


@click.group()
@click.version_option(version="0.1.0", prog_name="saynote")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to configuration file (default: ~/.config/saynote/config.yaml)",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[Path]):
    """saynote: voice-driven block notes."""
    configure_logging()
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


@cli.command()
@click.argument("title")
@click.option("--parent", "parent_id", help="Create the page as a child of this page (and link it there)")
@click.option("--icon", default=None, help="Page icon")
@click.pass_context
def new(ctx: click.Context, title: str, parent_id: Optional[str], icon: Optional[str]):
    """Create a page."""
    config = _load_config(ctx)

    async def create():
        if parent_id is None:
            page_store, _ = _open_stores(config)
            try:
                return await page_store.create_page(None, title, icon or config.editor.default_page_icon)
            except PersistenceError as e:
                raise click.ClickException(str(e))

        session = await _open_session(config, parent_id)
        outcome = await session.execute(CreateLinkedPage(title, icon or config.editor.default_page_icon))
        await _close(session)
        if outcome.created_page is None:
            raise click.ClickException(outcome.message or "Page could not be created")
        return outcome.created_page

    page = asyncio.run(create())
    click.echo(page.id)


@cli.command()
@click.pass_context
def pages(ctx: click.Context):
    """List pages as a tree."""
    config = _load_config(ctx)
    page_store, _ = _open_stores(config)

    all_pages = asyncio.run(page_store.load_all_pages())
    if not all_pages:
        click.echo("No pages yet.")
        return
    for root in build_page_tree(all_pages):
        for node, depth in root.walk():
            click.echo(f"{'  ' * depth}{node.page.icon} {node.page.title}  ({node.page.id})")


@cli.command()
@click.argument("page_id")
@click.option("--json", "as_json", is_flag=True, help="Print the document as JSON")
@click.pass_context
def show(ctx: click.Context, page_id: str, as_json: bool):
    """Print a page's document."""
    config = _load_config(ctx)
    page_store, _ = _open_stores(config)

    page = asyncio.run(page_store.get_page_by_id(page_id))
    if page is None:
        raise click.ClickException(str(PageNotFoundError(page_id)))
    if as_json:
        click.echo(serialize_document(page.content))
    else:
        click.echo(render_document(page.content))


@cli.command()
@click.argument("page_id")
@click.argument("transcript", nargs=-1, required=True)
@click.option("--yes", is_flag=True, help="Confirm deletions of linked pages without asking")
@click.pass_context
def say(ctx: click.Context, page_id: str, transcript: Tuple[str, ...], yes: bool):
    """Apply a spoken command (or dictation) to a page."""
    config = _load_config(ctx)
    text = " ".join(transcript)

    async def run():
        session = await _open_session(config, page_id)
        outcome = await session.handle_transcript(text)
        if outcome.confirmation is not None:
            if yes or click.confirm(outcome.confirmation.message + ". Continue?", default=False):
                outcome = await session.confirm()
            else:
                session.cancel_confirmation()
        await _close(session)
        return session, outcome

    session, outcome = asyncio.run(run())
    if outcome.message:
        click.echo(outcome.message)
    if outcome.created_page is not None:
        click.echo(f"Created page {outcome.created_page.id}")
    click.echo(render_document(session.document))


def _history_command(ctx: click.Context, page_id: str, steps: int, redo: bool) -> None:
    config = _load_config(ctx)

    async def run():
        session = await _open_session(config, page_id)
        outcome = await (session.redo(steps) if redo else session.undo(steps))
        await _close(session)
        return session, outcome

    session, outcome = asyncio.run(run())
    click.echo(outcome.message)
    if outcome.changed:
        click.echo(render_document(session.document))


@cli.command()
@click.argument("page_id")
@click.option("--steps", default=1, show_default=True, type=click.IntRange(min=1), help="Number of changes to undo")
@click.pass_context
def undo(ctx: click.Context, page_id: str, steps: int):
    """Undo the last change(s) to a page."""
    _history_command(ctx, page_id, steps, redo=False)


@cli.command()
@click.argument("page_id")
@click.option("--steps", default=1, show_default=True, type=click.IntRange(min=1), help="Number of changes to redo")
@click.pass_context
def redo(ctx: click.Context, page_id: str, steps: int):
    """Redo undone change(s) to a page."""
    _history_command(ctx, page_id, steps, redo=True)


def main():
    """Main entry point for setuptools console script."""
    cli()


if __name__ == "__main__":
    main()
