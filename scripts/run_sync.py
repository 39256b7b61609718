#!/usr/bin/env python3
"""
One-shot outbox drain - replays pending mutations against the upstream API and exits.
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Allow running from a source checkout
sys.path.insert(0, str(Path(__file__).parent.parent))

from guardsync.core.config import OUTBOX_DB_PATH, SYNC_TAG, UPSTREAM_URL
from guardsync.core.db import StorageUnavailable
from guardsync.core.outbox import OutboxStore
from guardsync.worker.network import HttpxNetwork
from guardsync.worker.sync import SyncCoordinator


async def drain_once(db_path: str, upstream: str, tag: str) -> int:
    outbox = OutboxStore(db_path)
    network = HttpxNetwork(base_url=upstream)
    await outbox.init()
    await network.init()
    try:
        report = await SyncCoordinator(outbox, network).on_sync_trigger(tag)
    finally:
        await network.teardown()
        await outbox.teardown()

    if report is None:
        print(f"❌ Unknown sync tag: {tag}")
        return 2

    print(f"✅ Delivered {report.delivered_count} mutation(s)")
    for kind, ids in report.delivered.items():
        print(f"   {kind}: {ids}")
    for kind, blocked_id in report.failed.items():
        print(f"⚠️  {kind} blocked at #{blocked_id}")
    print(f"📦 Remaining in outbox: {report.remaining_count}")
    return 1 if report.failed else 0


def main():
    parser = argparse.ArgumentParser(description="Drain the offline outbox once")
    parser.add_argument("--db", default=OUTBOX_DB_PATH, help=f"Outbox database (default: {OUTBOX_DB_PATH})")
    parser.add_argument("--upstream", default=UPSTREAM_URL, help=f"Upstream API (default: {UPSTREAM_URL})")
    parser.add_argument("--tag", default=SYNC_TAG, help=f"Sync tag to fire (default: {SYNC_TAG})")
    args = parser.parse_args()

    print(f"🔄 Draining {args.db} -> {args.upstream}")
    try:
        sys.exit(asyncio.run(drain_once(args.db, args.upstream, args.tag)))
    except StorageUnavailable as e:
        print(f"💥 Outbox unavailable: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
