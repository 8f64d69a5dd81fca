from __future__ import annotations

import argparse
import asyncio
from typing import Optional

from flashdeck.clients import ApiClients, ApiClientError
from flashdeck.core.logging import setup_logging
from flashdeck.core.notify import RecordingNotifier
from flashdeck.modules.reviews.keyboard import KeyEvent, key_code_for_char
from flashdeck.modules.reviews.models import SessionStatus
from flashdeck.modules.reviews.player import PlayerView, ReviewPlayer, build_session_config
from flashdeck.modules.reviews.session import ReviewSessionEngine

HELP = "keys: <space> reveal | 1-5 grade | <enter>/l next | q quit"


def _print_view(view: PlayerView) -> None:
    print(f"\n[{view.progress.current_index}/{view.progress.total}] {view.status.value}")
    if view.completed:
        print("All cards reviewed.")
    elif view.front is not None:
        print(f"Q: {view.front}")
        if view.back is not None:
            print(f"A: {view.back}")
            print("grade: 1 again, 2 fail, 3 hard, 4 good, 5 easy")
    if view.error_message:
        print(f"! {view.error_message}")


def _print_notifications(notifier: RecordingNotifier) -> None:
    for n in notifier.drain():
        suffix = f" ({n.description})" if n.description else ""
        print(f"{'✓' if n.level == 'success' else '✗'} {n.message}{suffix}")


def _key_for_line(line: str) -> Optional[str]:
    # An empty line is a bare Enter
    return key_code_for_char(line[:1] if line else "\n")


async def _read_line(prompt: str) -> Optional[str]:
    try:
        return await asyncio.to_thread(input, prompt)
    except EOFError:
        return None


async def _run(args: argparse.Namespace) -> int:
    clients = ApiClients.create(args.base_url)
    notifier = RecordingNotifier()
    try:
        try:
            config = await build_session_config(
                clients.flashcards, limit=args.limit, tags=args.tag or None
            )
        except ApiClientError as e:
            print(f"Failed to load flashcards: {e.message}")
            return 1
        if not config.cards:
            print("No flashcards to review.")
            return 0

        engine = ReviewSessionEngine(config, client=clients.review_sessions, notifier=notifier)
        player = ReviewPlayer(engine, notifier=notifier)
        print(HELP)
        try:
            while player.binder.enabled:
                _print_view(player.render())
                line = await _read_line("> ")
                if line is None or line.strip().lower() == "q":
                    print("Session abandoned; nothing was saved.")
                    return 1
                code = _key_for_line(line)
                if code is None:
                    print(HELP)
                    continue
                player.keys.dispatch(KeyEvent(code=code))

            _print_view(player.render())
            while True:
                await player.submit()
                _print_notifications(notifier)
                if engine.state.status != SessionStatus.ERROR:
                    break
                line = await _read_line("r to retry, q to quit > ")
                if line is None or line.strip().lower() != "r":
                    return 1
        finally:
            player.close()
        return 0 if engine.state.status == SessionStatus.COMPLETED else 1
    finally:
        await clients.aclose()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="flashdeck-review", description="Review flashcards in the terminal"
    )
    parser.add_argument("--limit", type=int, default=None, help="Maximum cards in the session")
    parser.add_argument("--tag", action="append", help="Only cards with this tag (repeatable)")
    parser.add_argument("--base-url", default=None, help="API base URL")
    parser.add_argument("--log-level", default="WARNING", help="Logging level")
    args = parser.parse_args(argv)

    setup_logging(args.log_level.upper())
    return asyncio.run(_run(args))


if __name__ == "__main__":
    raise SystemExit(main())
