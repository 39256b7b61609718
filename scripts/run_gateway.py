#!/usr/bin/env python3
"""
Run the offline gateway in front of the upstream API.
"""

import argparse
import sys
from pathlib import Path

import uvicorn

# Allow running from a source checkout
sys.path.insert(0, str(Path(__file__).parent.parent))

from guardsync.core.config import GATEWAY_HOST, GATEWAY_PORT, UPSTREAM_URL, validate_sync_config


def main():
    parser = argparse.ArgumentParser(description="Run the TrafficGuard offline gateway")
    parser.add_argument("--host", default=GATEWAY_HOST, help=f"Bind address (default: {GATEWAY_HOST})")
    parser.add_argument("--port", type=int, default=GATEWAY_PORT, help=f"Bind port (default: {GATEWAY_PORT})")
    parser.add_argument("--reload", action="store_true", help="Reload on code changes (development only)")
    args = parser.parse_args()

    issues = validate_sync_config()
    if issues:
        print("❌ Configuration invalid:")
        for issue in issues:
            print(f"   - {issue}")
        sys.exit(1)

    print(f"🚀 Offline gateway on http://{args.host}:{args.port} -> {UPSTREAM_URL}")
    uvicorn.run("guardsync.api.main:app", host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()
