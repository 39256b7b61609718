#!/usr/bin/env python3
"""
Outbox utilities - inspect or purge pending offline mutations.
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Allow running from a source checkout
sys.path.insert(0, str(Path(__file__).parent.parent))

from guardsync.api.schemas import payload_to_dict
from guardsync.core.config import OUTBOX_DB_PATH
from guardsync.core.db import StorageUnavailable
from guardsync.core.outbox import OutboxStore
from guardsync.util.logging import sanitize_payload


async def list_command(outbox: OutboxStore, kind: str = None, reveal: bool = False):
    pending = await outbox.list_pending(kind)
    if not pending:
        print("✅ Outbox is empty")
        return

    print(f"📦 {len(pending)} pending mutation(s)")
    for m in pending:
        payload = sanitize_payload(payload_to_dict(m.payload), reveal_sensitive=reveal)
        print(f"  #{m.id} {m.resource_kind.value} created={m.created_at.isoformat()} attempts={m.attempt_count}")
        if m.last_error:
            print(f"      last_error: {m.last_error}")
        print(f"      payload: {payload}")


async def purge_command(outbox: OutboxStore, kind: str = None, force: bool = False):
    total = await outbox.count(kind)
    if total == 0:
        print("✅ Nothing to purge")
        return

    if not force:
        print(f"⚠️  WARNING: {total} unsent mutation(s) will be lost permanently")
        response = input("Are you sure you want to continue? (yes/no): ").strip().lower()
        if response != "yes":
            print("Purge cancelled.")
            return

    dropped = await outbox.clear(kind)
    print(f"🗑️  Purged {dropped} mutation(s)")


async def run(args) -> None:
    outbox = OutboxStore(args.db)
    await outbox.init()
    try:
        if args.command == "list":
            await list_command(outbox, args.kind, args.reveal)
        elif args.command == "purge":
            await purge_command(outbox, args.kind, args.force)
    finally:
        await outbox.teardown()


def main():
    parser = argparse.ArgumentParser(description="Inspect the offline outbox")
    parser.add_argument("--db", default=OUTBOX_DB_PATH, help=f"Outbox database (default: {OUTBOX_DB_PATH})")
    subparsers = parser.add_subparsers(dest="command", required=True)

    list_parser = subparsers.add_parser("list", help="List pending mutations")
    list_parser.add_argument("--kind", choices=["violation_report", "emergency_alert", "generic"])
    list_parser.add_argument("--reveal", action="store_true", help="Show sensitive payload fields")

    purge_parser = subparsers.add_parser("purge", help="Drop pending mutations")
    purge_parser.add_argument("--kind", choices=["violation_report", "emergency_alert", "generic"])
    purge_parser.add_argument("--force", action="store_true", help="Skip confirmation")

    args = parser.parse_args()
    try:
        asyncio.run(run(args))
    except StorageUnavailable as e:
        print(f"💥 Outbox unavailable: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
