from __future__ import annotations

import argparse
import asyncio
import json
from pathlib import Path
from typing import Any

from flashdeck.clients import ApiClients, ApiClientError
from flashdeck.core.config import settings
from flashdeck.core.logging import setup_logging
from flashdeck.core.notify import RecordingNotifier
from flashdeck.core.storage import JsonFileStore
from flashdeck.modules.generation.engine import GenerationLifecycleEngine


def _load_text(args: argparse.Namespace) -> str:
    if args.text and args.text_file:
        raise SystemExit("Provide either --text or --text-file, not both")
    if args.text_file:
        return Path(args.text_file).read_text(encoding="utf-8")
    if args.text:
        return args.text
    raise SystemExit("--text or --text-file is required")


async def _run(args: argparse.Namespace) -> int:
    clients = ApiClients.create(args.base_url)
    store = JsonFileStore(args.state_file or settings.generation.state_file)
    notifier = RecordingNotifier()
    engine = GenerationLifecycleEngine(
        clients.generations,
        store=store,
        notifier=notifier,
        polling_interval=args.interval,
    )
    try:
        if args.resume or args.cancel:
            await engine.check_active_generation()
            if engine.generation is None:
                print("No active generation to resume.")
                return 1
            if args.cancel:
                await engine.cancel_generation()
        else:
            await engine.start_generation(
                args.model, _load_text(args), temperature=args.temperature
            )

        await engine.wait_until_idle()

        out: dict[str, Any] = {
            "generation": engine.generation.model_dump(mode="json") if engine.generation else None,
            "candidates_summary": (
                engine.candidates_summary.model_dump(mode="json")
                if engine.candidates_summary
                else None
            ),
            "error": engine.error.model_dump(mode="json") if engine.error else None,
        }
        if engine.generation and engine.generation.status.value == "succeeded":
            try:
                page = await clients.candidates.list(engine.generation.id, limit=100)
                out["candidates"] = [c.model_dump(mode="json") for c in page.data]
            except ApiClientError as e:
                out["candidates_error"] = e.message
        print(json.dumps(out, indent=2))
        return 1 if engine.error else 0
    finally:
        await engine.aclose()
        await clients.aclose()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="flashdeck-generate", description="Generate flashcard candidates from a text"
    )
    parser.add_argument("--text", "-t", help="Source text")
    parser.add_argument("--text-file", help="Path to a file containing the source text")
    parser.add_argument("--model", default=settings.generation.model_name, help="Model name")
    parser.add_argument("--temperature", type=float, default=None, help="Sampling temperature (0-2)")
    parser.add_argument("--resume", action="store_true", help="Re-attach to a stored generation")
    parser.add_argument("--cancel", action="store_true", help="Cancel the stored generation")
    parser.add_argument("--interval", type=float, default=None, help="Polling interval in seconds")
    parser.add_argument("--state-file", default=None, help="Where the active generation id is kept")
    parser.add_argument("--base-url", default=None, help="API base URL")
    parser.add_argument("--log-level", default="WARNING", help="Logging level")
    args = parser.parse_args(argv)

    setup_logging(args.log_level.upper())
    return asyncio.run(_run(args))


if __name__ == "__main__":
    raise SystemExit(main())
