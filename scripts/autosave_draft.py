"""
Drive the autosave pipeline from the command line.

Reads one JSON object per line from stdin, each the full form state after an
edit, and autosaves it to the portal API. Status changes are printed as JSON
lines. `--recover` prints the locally stored draft instead.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from tutor_portal.autosave import (
    AutosaveOrchestrator,
    ConnectivityMonitor,
    HttpPersistenceClient,
)
from tutor_portal.config import get_settings
from tutor_portal.dependencies import get_fallback_store
from tutor_portal.logging_utils import configure_logging

logger = logging.getLogger("autosave_draft")


def _print_status(status) -> None:
    print(json.dumps(status.as_dict()), flush=True)


async def run(args: argparse.Namespace) -> int:
    settings = get_settings()
    fallback = get_fallback_store()

    if args.recover:
        draft = fallback.read(args.user_id, args.application_id)
        if draft is None:
            print("No local draft found", file=sys.stderr)
            return 1
        print(json.dumps({"data": draft.data, "timestamp": draft.timestamp}, indent=2))
        return 0

    connectivity = ConnectivityMonitor(online=True)
    async with HttpPersistenceClient(
        args.api_url or settings.portal_api_url,
        args.token,
        api_prefix=settings.api_prefix,
        connectivity=connectivity,
    ) as remote:
        orchestrator = AutosaveOrchestrator(
            remote,
            fallback,
            connectivity,
            user_id=args.user_id,
            application_id=args.application_id,
            debounce_ms=settings.autosave_debounce_ms,
            throttle_ms=settings.autosave_throttle_ms,
            status_reset_ms=settings.autosave_status_reset_ms,
            reachability_check=remote.ping,
            logger=logger,
        )
        orchestrator.on_status_change(_print_status)
        loop = asyncio.get_running_loop()
        async with orchestrator:
            while True:
                line = await loop.run_in_executor(None, sys.stdin.readline)
                if not line:
                    break
                line = line.strip()
                if not line:
                    continue
                try:
                    snapshot = json.loads(line)
                except json.JSONDecodeError:
                    logger.warning("Skipping line that is not valid JSON")
                    continue
                if not isinstance(snapshot, dict):
                    logger.warning("Skipping line that is not a JSON object")
                    continue
                orchestrator.update(snapshot)

            # Let the final debounce window close before shutting down.
            await asyncio.sleep(settings.autosave_debounce_ms / 1000 + 0.1)
            await orchestrator.flush()

            if orchestrator.has_unsaved_changes:
                # A throttled last edit gets one more attempt once the window opens.
                await asyncio.sleep(orchestrator.throttle_remaining_ms() / 1000)
                await orchestrator.perform_save()
                await orchestrator.flush()

            if orchestrator.has_unsaved_changes:
                fallback.write(args.user_id, args.application_id, orchestrator.snapshot)
                print("Unsaved changes kept in the local draft store", file=sys.stderr)
                return 2
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Autosave a tutor application draft")
    parser.add_argument("--user-id", required=True, help="Owner of the application")
    parser.add_argument("--application-id", required=True, help="Application to save")
    parser.add_argument("--token", default="", help="Bearer token for the portal API")
    parser.add_argument(
        "--api-url",
        default=None,
        help="Portal API base URL (defaults to PORTAL_API_URL)",
    )
    parser.add_argument(
        "--recover",
        action="store_true",
        help="Print the locally stored draft and exit",
    )
    args = parser.parse_args()
    if not args.recover and not args.token:
        parser.error("--token is required unless --recover is given")

    configure_logging()
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
