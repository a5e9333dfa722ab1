"""
Command-line entry point
谁是卧底客户端命令行入口
"""

import argparse
import asyncio
import getpass
import json
import logging
import sys
from typing import Awaitable, Callable, List, Optional, Sequence

import uvicorn
from pydantic import ValidationError as PydanticValidationError

from undercover_client.core.config import settings
from undercover_client.core.exceptions import UnauthorizedError, UndercoverError, ValidationError
from undercover_client.core.logging_setup import setup_logging
from undercover_client.schemas import (
    GameMode, GroupCreate, LoginCredentials, PlayerInput, RegisterData,
    RoomCreate, WordPairCreate, WordUpload
)
from undercover_client.services import reorder
from undercover_client.services.api_client import UndercoverApiClient
from undercover_client.services.game_setup import GameSetupService
from undercover_client.services.lifecycle import GameLifecycle, LifecyclePhase, RoundStage
from undercover_client.services.round_refresher import RoundRefresher
from undercover_client.services.sync import ResourceSync
from undercover_client.utils.session import get_session_store

logger = logging.getLogger(__name__)

Ask = Callable[[str], Awaitable[str]]

RELOGIN_HINT = "Your session has ended. Run `undercover login` to sign in again."


async def console_ask(prompt: str) -> str:
    # keeps the event loop free for the round refresher
    return await asyncio.to_thread(input, prompt)


def _pydantic_message(error) -> str:
    return "; ".join(item["msg"] for item in error.errors())


# ---- output helpers ---------------------------------------------------------

def print_players(players, show_roles: bool = False) -> None:
    for index, gp in enumerate(players, start=1):
        status = "" if gp.is_alive else " (out)"
        role = f" [{gp.role.value}]" if show_roles and gp.role else ""
        print(f"  {index}. {gp.name}{role}{status}")


def apply_order(editor: reorder.RosterReorder, positions: Sequence[int]) -> None:
    """
    Rearrange the draft so that the entries at the given 1-based positions
    come first in that order.
    """
    items = editor.draft
    if sorted(positions) != list(range(1, len(items) + 1)):
        raise ValidationError(f"--order must list each position from 1 to {len(items)} exactly once")
    target = [items[p - 1].id for p in positions]
    for index, item_id in enumerate(target):
        editor.move(editor.draft_ids.index(item_id), index)


# ---- auth -------------------------------------------------------------------

async def cmd_login(sync: ResourceSync, args) -> int:
    password = args.password or getpass.getpass("Password: ")
    user = await sync.login(LoginCredentials(email=args.email, password=password))
    print(f"Logged in as {user.username}")
    return 0


async def cmd_register(sync: ResourceSync, args) -> int:
    password = args.password or getpass.getpass("Password: ")
    user = await sync.register(
        RegisterData(email=args.email, password=password, username=args.username, avatar=args.avatar)
    )
    print(f"Registered and logged in as {user.username}")
    return 0


async def cmd_logout(sync: ResourceSync, args) -> int:
    sync.logout()
    print("Logged out")
    return 0


async def cmd_whoami(sync: ResourceSync, args) -> int:
    user = await sync.profile(force=True)
    print(f"{user.username} <{user.email}>")
    return 0


# ---- groups -----------------------------------------------------------------

async def cmd_groups_list(sync: ResourceSync, args) -> int:
    groups = await sync.groups()
    if not groups:
        print("No groups yet")
    for group in groups:
        print(f"{group.id}  {group.name}  ({len(group.players)} players)")
    return 0


async def cmd_groups_show(sync: ResourceSync, args) -> int:
    group = await sync.group(args.group_id)
    print(f"{group.name}" + (f" - {group.description}" if group.description else ""))
    for index, player in enumerate(group.players, start=1):
        print(f"  {index}. {player.name}  {player.id}")
    return 0


async def cmd_groups_create(sync: ResourceSync, args) -> int:
    players = [PlayerInput(name=name) for name in args.player or []]
    group = await sync.create_group(GroupCreate(name=args.name, description=args.description, players=players))
    print(f"Created group {group.id} with {len(group.players)} players")
    return 0


async def cmd_groups_add_player(sync: ResourceSync, args) -> int:
    group = await sync.add_player_to_group(args.group_id, PlayerInput(name=args.name, avatar=args.avatar))
    print(f"{group.name} now has {len(group.players)} players")
    return 0


async def cmd_groups_reorder(sync: ResourceSync, args) -> int:
    editor = reorder.for_group(sync, await sync.group(args.group_id))
    apply_order(editor, args.order)
    if not await editor.commit():
        print(editor.error.text)
        return 1
    return await cmd_groups_show(sync, args)


# ---- rooms ------------------------------------------------------------------

async def cmd_rooms_list(sync: ResourceSync, args) -> int:
    rooms = await sync.rooms()
    if not rooms:
        print("No rooms yet")
    for room in rooms:
        group = room.group.name if room.group else "-"
        print(f"{room.id}  {room.name}  [{room.game_mode.value}]  group: {group}")
    return 0


async def cmd_rooms_show(sync: ResourceSync, args) -> int:
    room = await sync.room(args.room_id)
    print(f"{room.name} [{room.game_mode.value}]")
    if room.group:
        print(f"Group {room.group.name}:")
        for player in room.group.players:
            print(f"  - {player.name}")
    return 0


async def cmd_rooms_create(sync: ResourceSync, args) -> int:
    room = await sync.create_room(RoomCreate(name=args.name, group_id=args.group, game_mode=GameMode(args.mode)))
    print(f"Created room {room.id}")
    return 0


# ---- games ------------------------------------------------------------------

async def cmd_games_create(sync: ResourceSync, args) -> int:
    setup = GameSetupService(sync)
    result = await setup.create_game_from_room(
        args.room_id,
        game_mode=GameMode(args.mode) if args.mode else None,
        undercover_count=args.undercover,
        mr_white_count=args.mr_white,
    )
    print(f"Created game {result.game.id} with {result.game.player_count} players")
    if not result.complete:
        print(result.transfer_error.text)
        return 1
    return 0


async def cmd_games_show(sync: ResourceSync, args) -> int:
    game = await sync.game(args.game_id, force=True)
    print(f"Game {game.id}: {game.status.value} [{game.game_mode.value}] "
          f"undercover={game.undercover_count} mr_white={game.mr_white_count}")
    print_players(game.ordered_players, show_roles=game.is_finished)
    return 0


async def cmd_games_reorder(sync: ResourceSync, args) -> int:
    game = await sync.game(args.game_id, force=True)
    editor = reorder.for_game(sync, game)
    apply_order(editor, args.order)
    if not await editor.commit():
        print(editor.error.text)
        return 1
    return await cmd_games_show(sync, args)


async def cmd_games_result(sync: ResourceSync, args) -> int:
    game = await sync.game(args.game_id, force=True)
    if not game.is_finished:
        print("The game has not finished yet")
        return 1
    summary = await GameSetupService(sync).summarize(game)
    print_summary(summary)
    return 0


def print_summary(summary) -> None:
    winner = summary.winner.label if summary.winner else "nobody"
    print(f"Winner: {winner}")
    print(f"Rounds: {summary.total_rounds}  Duration: {summary.duration_minutes} min")
    print_players(summary.players, show_roles=True)


async def cmd_games_play(sync: ResourceSync, args) -> int:
    lifecycle = GameLifecycle(sync, args.game_id)
    refresher = RoundRefresher(lifecycle, interval=args.refresh) if args.refresh else None
    try:
        if not await lifecycle.load():
            print(lifecycle.error.text)
            return 1
        if refresher:
            await refresher.start()
        return await play(lifecycle, console_ask)
    finally:
        if refresher:
            await refresher.stop()
        lifecycle.close()


# ---- interactive play -------------------------------------------------------

async def _retry(lifecycle: GameLifecycle, ask: Ask) -> bool:
    """Print the last error; True when the operator wants to try again"""
    print(lifecycle.error.text)
    if lifecycle.error.kind == UnauthorizedError.kind:
        return False
    answer = (await ask("Try again? [Y/n] ")).strip().lower()
    return answer in ("", "y", "yes")


async def _configure(lifecycle: GameLifecycle, ask: Ask) -> bool:
    print("Players in turn order:")
    print_players(lifecycle.players)
    answer = (await ask(f"Undercover count [{lifecycle.undercover_count}]: ")).strip()
    undercover = int(answer) if answer.isdigit() else lifecycle.undercover_count
    mr_white = lifecycle.mr_white_count
    if lifecycle.game and lifecycle.game.game_mode == GameMode.EXTENDED:
        answer = (await ask(f"Mr. White count [{mr_white}]: ")).strip()
        mr_white = int(answer) if answer.isdigit() else mr_white
    lifecycle.set_role_counts(undercover, mr_white)

    problem = lifecycle.configuration_problem
    if problem:
        print(problem)
        return False

    answer = (await ask("Start the game? [Y/n/order 2 1 3 ...] ")).strip().lower()
    if answer.startswith("order"):
        editor = lifecycle.begin_reorder()
        if editor is None:
            return False
        try:
            apply_order(editor, [int(p) for p in answer.split()[1:]])
        except (ValueError, ValidationError) as e:
            print(f"Invalid order: {e}")
            return False
        if not await editor.commit():
            print(editor.error.text)
        return False
    if answer not in ("", "y", "yes"):
        return False
    return await lifecycle.start()


async def _reveal(lifecycle: GameLifecycle, ask: Ask) -> bool:
    player = lifecycle.current_revealer
    await ask(f"\nPass the device to {player.name} and press Enter to fetch the role")
    if not await lifecycle.arm_reveal():
        return False
    await ask("Make sure nobody else is looking, then press Enter to show the word")
    lifecycle.show_word()
    secret = lifecycle.revealed
    print(f"  Role: {secret.role.value}")
    print(f"  Word: {secret.word}" if secret.word else "  You have no word. Listen carefully.")
    await ask("Press Enter to hide it and pass the device on")
    print("\n" * 40)
    return await lifecycle.advance_reveal()


async def _describe(lifecycle: GameLifecycle, ask: Ask) -> bool:
    print(f"\n== Round {lifecycle.round_number} ==")
    speaker = lifecycle.current_speaker
    alive = lifecycle.alive_players
    if speaker in alive:
        start = alive.index(speaker)
        alive = alive[start:] + alive[:start]
    for gp in alive:
        text = await ask(f"{gp.name} describes (Enter to skip, !out to eliminate): ")
        if text.strip() == "!out":
            return await _host_eliminate(lifecycle, ask)
        if text.strip():
            lifecycle.record_description(text, speaker_id=gp.id)
    return lifecycle.begin_voting()


async def _host_eliminate(lifecycle: GameLifecycle, ask: Ask) -> bool:
    alive = lifecycle.alive_players
    print_players(alive)
    answer = (await ask("Eliminate player number: ")).strip()
    if not answer.isdigit() or not 1 <= int(answer) <= len(alive):
        print("No such player")
        return False
    return await lifecycle.eliminate(alive[int(answer) - 1].player_id)


async def _vote(lifecycle: GameLifecycle, ask: Ask) -> bool:
    alive = lifecycle.alive_players
    print("Vote for the player you suspect:")
    print_players(alive)
    for voter in lifecycle.pending_voters:
        answer = (await ask(f"{voter.name} votes for (number, !out to eliminate): ")).strip()
        if answer == "!out":
            return await _host_eliminate(lifecycle, ask)
        if not answer.isdigit() or not 1 <= int(answer) <= len(alive):
            print("No such player")
            return False
        if not await lifecycle.submit_vote(voter.id, alive[int(answer) - 1].id):
            return False
    return await lifecycle.process_round()


async def _resolved(lifecycle: GameLifecycle, ask: Ask) -> bool:
    outcome = lifecycle.last_outcome
    if outcome and outcome.eliminated_player_id:
        role = outcome.role.value if outcome.role else "unknown"
        print(f"{outcome.eliminated_name or 'A player'} is out, they were {role}")
    await ask("Press Enter for the next round")
    return await lifecycle.next_round()


async def play(lifecycle: GameLifecycle, ask: Ask) -> int:
    """Walk the lifecycle until the game finishes"""
    steps = {
        LifecyclePhase.CONFIGURING: _configure,
        LifecyclePhase.REVEALING: _reveal,
    }
    stages = {
        RoundStage.DESCRIBING: _describe,
        RoundStage.VOTING: _vote,
        RoundStage.RESOLVED: _resolved,
    }
    while lifecycle.phase != LifecyclePhase.FINISHED:
        if lifecycle.phase == LifecyclePhase.ROUND:
            step = stages[lifecycle.round_stage]
        else:
            step = steps[lifecycle.phase]
        if await step(lifecycle, ask):
            continue
        if lifecycle.error is not None and not await _retry(lifecycle, ask):
            return 1

    winner = lifecycle.winner.label if lifecycle.winner else "nobody"
    print(f"\nGame over. Winner: {winner}")
    summary = await lifecycle.summary()
    if summary is not None:
        print_summary(summary)
    answer = (await ask("Play again with the same players? [y/N] ")).strip().lower()
    if answer in ("y", "yes"):
        successor = await lifecycle.create_rematch()
        if successor is None:
            print(lifecycle.error.text)
            return 1
        try:
            if successor.error is not None:
                print(successor.error.text)
            return await play(successor, ask)
        finally:
            successor.close()
    return 0


# ---- words ------------------------------------------------------------------

async def cmd_words_list(sync: ResourceSync, args) -> int:
    for word in await sync.words():
        print(f"{word.id}  {word.civilian_word} / {word.undercover_word}")
    return 0


async def cmd_words_add(sync: ResourceSync, args) -> int:
    word = await sync.create_word(WordPairCreate(civilian_word=args.civilian, undercover_word=args.undercover))
    print(f"Added {word.civilian_word} / {word.undercover_word}")
    return 0


def read_word_file(path: str) -> WordUpload:
    """JSON list of pairs, or one ``civilian,undercover`` pair per line"""
    with open(path, "r", encoding="utf-8") as fh:
        content = fh.read()
    if content.lstrip().startswith("["):
        return WordUpload.model_validate({"words": json.loads(content)})
    pairs = []
    for line in content.splitlines():
        if not line.strip() or line.lstrip().startswith("#"):
            continue
        civilian, _, undercover = line.partition(",")
        pairs.append(WordPairCreate(civilian_word=civilian, undercover_word=undercover))
    return WordUpload(words=pairs)


async def cmd_words_upload(sync: ResourceSync, args) -> int:
    words = await sync.upload_words(read_word_file(args.file))
    print(f"Uploaded {len(words)} word pairs")
    return 0


async def cmd_words_delete(sync: ResourceSync, args) -> int:
    await sync.delete_word(args.word_id)
    print("Deleted")
    return 0


async def cmd_words_random(sync: ResourceSync, args) -> int:
    word = await sync.random_word()
    print(f"{word.civilian_word} / {word.undercover_word}")
    return 0


# ---- dev server -------------------------------------------------------------

def cmd_serve(args) -> int:
    uvicorn.run(
        "undercover_client.devserver.app:app",
        host=args.host,
        port=args.port,
        access_log=True,
        log_level=settings.LOG_LEVEL.lower()
    )
    return 0


# ---- parser -----------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="undercover", description="Undercover party game host client")
    parser.add_argument("--api-url", default=None, help=f"API base URL (default {settings.api_url})")
    parser.add_argument("--log-level", default=None, help="Logging level")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("login", help="Sign in")
    p.add_argument("--email", required=True)
    p.add_argument("--password")
    p.set_defaults(handler=cmd_login)

    p = sub.add_parser("register", help="Create an account")
    p.add_argument("--email", required=True)
    p.add_argument("--username", required=True)
    p.add_argument("--password")
    p.add_argument("--avatar")
    p.set_defaults(handler=cmd_register)

    sub.add_parser("logout", help="Forget the stored credential").set_defaults(handler=cmd_logout)
    sub.add_parser("whoami", help="Show the signed-in user").set_defaults(handler=cmd_whoami)

    groups = sub.add_parser("groups", help="Player groups").add_subparsers(dest="action", required=True)
    groups.add_parser("list").set_defaults(handler=cmd_groups_list)
    p = groups.add_parser("show")
    p.add_argument("group_id")
    p.set_defaults(handler=cmd_groups_show)
    p = groups.add_parser("create")
    p.add_argument("name")
    p.add_argument("--description")
    p.add_argument("--player", action="append", help="Player name, repeatable")
    p.set_defaults(handler=cmd_groups_create)
    p = groups.add_parser("add-player")
    p.add_argument("group_id")
    p.add_argument("name")
    p.add_argument("--avatar")
    p.set_defaults(handler=cmd_groups_add_player)
    p = groups.add_parser("reorder")
    p.add_argument("group_id")
    p.add_argument("--order", type=int, nargs="+", required=True, help="Current positions in the new order")
    p.set_defaults(handler=cmd_groups_reorder)

    rooms = sub.add_parser("rooms", help="Rooms").add_subparsers(dest="action", required=True)
    rooms.add_parser("list").set_defaults(handler=cmd_rooms_list)
    p = rooms.add_parser("show")
    p.add_argument("room_id")
    p.set_defaults(handler=cmd_rooms_show)
    p = rooms.add_parser("create")
    p.add_argument("name")
    p.add_argument("--group")
    p.add_argument("--mode", choices=[m.value for m in GameMode], default=GameMode.CLASSIC.value)
    p.set_defaults(handler=cmd_rooms_create)

    games = sub.add_parser("games", help="Games").add_subparsers(dest="action", required=True)
    p = games.add_parser("create")
    p.add_argument("room_id")
    p.add_argument("--mode", choices=[m.value for m in GameMode])
    p.add_argument("--undercover", type=int, default=1)
    p.add_argument("--mr-white", type=int, default=None)
    p.set_defaults(handler=cmd_games_create)
    for name, handler in (("show", cmd_games_show), ("result", cmd_games_result)):
        p = games.add_parser(name)
        p.add_argument("game_id")
        p.set_defaults(handler=handler)
    p = games.add_parser("play")
    p.add_argument("game_id")
    p.add_argument("--refresh", type=float, default=None, help="Refresh the round every N seconds")
    p.set_defaults(handler=cmd_games_play)
    p = games.add_parser("reorder")
    p.add_argument("game_id")
    p.add_argument("--order", type=int, nargs="+", required=True, help="Current positions in the new order")
    p.set_defaults(handler=cmd_games_reorder)

    words = sub.add_parser("words", help="Word pairs").add_subparsers(dest="action", required=True)
    words.add_parser("list").set_defaults(handler=cmd_words_list)
    p = words.add_parser("add")
    p.add_argument("civilian")
    p.add_argument("undercover")
    p.set_defaults(handler=cmd_words_add)
    p = words.add_parser("upload")
    p.add_argument("file")
    p.set_defaults(handler=cmd_words_upload)
    p = words.add_parser("delete")
    p.add_argument("word_id")
    p.set_defaults(handler=cmd_words_delete)
    words.add_parser("random").set_defaults(handler=cmd_words_random)

    p = sub.add_parser("serve", help="Run the in-memory development server")
    p.add_argument("--host", default=settings.DEV_HOST)
    p.add_argument("--port", type=int, default=settings.DEV_PORT)
    p.set_defaults(sync_handler=cmd_serve)

    return parser


async def run_command(args) -> int:
    session = get_session_store()
    async with UndercoverApiClient(session, base_url=args.api_url) as api:
        sync = ResourceSync(api)
        try:
            return await args.handler(sync, args)
        except UnauthorizedError as e:
            logger.debug(f"{args.command} unauthorized: {e}")
            print(f"Error: {e}" if args.command in ("login", "register") else RELOGIN_HINT)
            return 1
        except UndercoverError as e:
            print(f"Error: {e}")
            return 1


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(level=args.log_level)

    if getattr(args, "sync_handler", None):
        return args.sync_handler(args)
    try:
        return asyncio.run(run_command(args))
    except KeyboardInterrupt:
        print()
        return 130
    except PydanticValidationError as e:
        print(f"Invalid input: {_pydantic_message(e)}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
