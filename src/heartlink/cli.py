"""Command-line interface for Heartlink - truth or dare for two."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)

console = Console()

PHASE_LABELS = {
    "lobby": "Waiting for player 2 to join",
    "awaiting_prompt_choice": "Your turn! Truth or dare?",
    "awaiting_answer": "Your turn to answer",
    "waiting": "Waiting for {active} to choose...",
    "waiting_on_other": "Waiting for {active} to answer...",
}


def _open_store(args: argparse.Namespace):
    from heartlink.config import get_config
    from heartlink.store.sqlite_store import SQLiteTurnStore

    db_path = Path(args.db) if args.db else get_config().db_path
    return SQLiteTurnStore(db_path)


def render_view(view, room=None) -> Panel:
    """Render a ViewState as a rich panel."""
    body = Text()
    if room is not None:
        body.append(f"{room.player1}", style="bold")
        body.append("  ♥  ", style="magenta")
        body.append(f"{room.player2 or '...'}\n", style="bold")

    filled = int(view.progress // 5)
    body.append("Connection ", style="dim")
    body.append("█" * filled + "░" * (20 - filled), style="magenta")
    body.append(f" {view.progress:.0f}%\n\n")

    label = PHASE_LABELS[view.phase.value].format(active=view.active_player)
    body.append(label + "\n", style="bold cyan" if view.is_my_turn else "")

    if view.current_turn is not None:
        turn = view.current_turn
        body.append(f"\n[{turn.kind.value.upper()}] ", style="bold magenta")
        body.append(f"{turn.player_name}: {turn.prompt}\n")

    title = f"Turn {view.max_turn_number}" if view.max_turn_number else "New game"
    return Panel(body, title=title, subtitle=view.local_player)


def render_history(view, limit: int = 5) -> Table:
    """Render the newest answered turns."""
    table = Table(title="History", show_lines=False)
    table.add_column("#", justify="right")
    table.add_column("Player")
    table.add_column("Kind")
    table.add_column("Prompt")
    table.add_column("Answer")
    for turn in view.history[:limit]:
        table.add_row(
            str(turn.turn_number),
            turn.player_name,
            turn.kind.value,
            turn.prompt,
            turn.answer or "",
        )
    return table


def cmd_create(args: argparse.Namespace) -> int:
    """Create a room and print its join code."""
    from heartlink.contracts.game import GameMode
    from heartlink.errors import HeartlinkError

    store = _open_store(args)
    try:
        room = asyncio.run(store.create_room(args.name, GameMode(args.mode)))
    except HeartlinkError as e:
        console.print(f"[red]Failed to create room: {e}[/]")
        return 1

    console.print(f"Room code: [bold magenta]{room.room_code}[/]")
    console.print(f"Room id:   {room.id}")
    return 0


def cmd_join(args: argparse.Namespace) -> int:
    """Take the second seat of a room by code."""
    from heartlink.errors import HeartlinkError

    store = _open_store(args)
    try:
        room = asyncio.run(store.join_room(args.code, args.name))
    except HeartlinkError as e:
        console.print(f"[red]Could not join: {e}[/]")
        return 1

    console.print(f"Joined {room.player1}'s room. Room id: {room.id}")
    return 0


def cmd_start(args: argparse.Namespace) -> int:
    """Start a full room."""
    from heartlink.errors import HeartlinkError

    store = _open_store(args)
    try:
        room = asyncio.run(store.start_room(args.room_id))
    except HeartlinkError as e:
        console.print(f"[red]Failed to start game: {e}[/]")
        return 1

    console.print(f"{room.player1} and {room.player2} are playing!")
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    """Print the current view of a room for one player."""
    from heartlink.config import get_config
    from heartlink.errors import HeartlinkError
    from heartlink.store.projections.turn_log import project

    store = _open_store(args)

    async def load():
        return await store.fetch_room(args.room_id), await store.fetch_turns(args.room_id)

    try:
        room, turns = asyncio.run(load())
    except HeartlinkError as e:
        console.print(f"[red]{e}[/]")
        return 1

    view = project(room, turns, args.name, get_config().PROGRESS_TARGET)
    console.print(render_view(view, room))
    if view.history:
        console.print(render_history(view))
    return 0


def cmd_play(args: argparse.Namespace) -> int:
    """Play interactively until the heart is full or the room disappears."""
    from heartlink.config import get_config
    from heartlink.contracts.view import Phase
    from heartlink.errors import ActionError, HeartlinkError
    from heartlink.prompts.pool import PromptPool
    from heartlink.runtime.submitter import ActionSubmitter
    from heartlink.runtime.sync_loop import SyncLoop

    config = get_config()
    actionable = (Phase.AWAITING_PROMPT_CHOICE, Phase.AWAITING_ANSWER)

    async def run() -> int:
        store = _open_store(args)
        pool = PromptPool.from_path(config.PROMPTS_PATH)
        sync = SyncLoop(store, args.name, config.PROGRESS_TARGET)
        submitter = ActionSubmitter(store, sync, pool)

        sync.on_view(lambda view: console.print(render_view(view, sync.room)))
        sync.on_notice(lambda e: console.print(f"[yellow]Connection problem: {e}[/]"))
        sync.on_fatal(lambda e: console.print(f"[red]Game ended: {e}[/]"))

        store.start_polling(config.POLL_INTERVAL)
        acted_on: tuple[int, int] | None = None
        try:
            async with sync:
                await sync.activate(args.room_id)
                while sync.is_active:
                    try:
                        view = await sync.wait_for(
                            lambda v: v.is_complete
                            or (v.phase in actionable
                                and (v.max_turn_number, v.closed_count) != acted_on)
                        )
                    except asyncio.CancelledError:
                        if sync.fatal_error is None:
                            raise
                        return 1

                    if view.is_complete:
                        console.print(render_history(view, limit=len(view.history)))
                        console.print("[bold magenta]♥ Heart link complete! ♥[/]")
                        return 0

                    try:
                        if view.phase == Phase.AWAITING_PROMPT_CHOICE:
                            choice = await asyncio.to_thread(
                                console.input, "Spin: [bold](t)ruth[/] or [bold](d)are[/]? "
                            )
                            kind = "dare" if choice.strip().lower().startswith("d") else "truth"
                            await submitter.choose_prompt(kind)
                        else:
                            text = await asyncio.to_thread(console.input, "Your answer: ")
                            await submitter.submit_answer(text)
                            console.print("[green]Answer submitted![/]")
                        acted_on = (view.max_turn_number, view.closed_count)
                    except ActionError as e:
                        console.print(f"[red]{e}[/]")
                    except HeartlinkError as e:
                        console.print(f"[yellow]Could not reach the game: {e}[/]")
        except HeartlinkError as e:
            console.print(f"[red]Failed to load game: {e}[/]")
            return 1
        finally:
            await store.stop_polling()
        return 1

    try:
        return asyncio.run(run())
    except KeyboardInterrupt:
        return 130


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    from heartlink import __version__
    from heartlink.config import get_config

    parser = argparse.ArgumentParser(
        prog="heartlink",
        description="Heartlink - truth or dare for two",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--db",
        default=None,
        help="Path to the shared SQLite database (default: DATA_DIR/DB_FILENAME)",
    )

    subparsers = parser.add_subparsers(dest="command")

    # heartlink create <name>
    create_parser = subparsers.add_parser("create", help="Create a room")
    create_parser.add_argument("name", help="Your display name")
    create_parser.add_argument(
        "--mode",
        choices=["friendly", "crush", "adult"],
        default="friendly",
        help="Prompt flavour (default: friendly)",
    )
    create_parser.set_defaults(func=cmd_create)

    # heartlink join <code> <name>
    join_parser = subparsers.add_parser("join", help="Join a room by code")
    join_parser.add_argument("code", help="Six-character room code")
    join_parser.add_argument("name", help="Your display name")
    join_parser.set_defaults(func=cmd_join)

    # heartlink start <room_id>
    start_parser = subparsers.add_parser("start", help="Start a full room")
    start_parser.add_argument("room_id", help="Room id printed by create")
    start_parser.set_defaults(func=cmd_start)

    # heartlink status <room_id> <name>
    status_parser = subparsers.add_parser("status", help="Show the game as a player sees it")
    status_parser.add_argument("room_id")
    status_parser.add_argument("name")
    status_parser.set_defaults(func=cmd_status)

    # heartlink play <room_id> <name>
    play_parser = subparsers.add_parser("play", help="Play interactively")
    play_parser.add_argument("room_id")
    play_parser.add_argument("name")
    play_parser.set_defaults(func=cmd_play)

    args = parser.parse_args(argv)

    config = get_config()
    for error in config.validate():
        logger.warning(f"Config: {error}")
    logging.getLogger().setLevel(config.LOG_LEVEL)

    # Show help if no command
    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
