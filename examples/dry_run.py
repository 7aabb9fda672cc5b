#!/usr/bin/env python3
"""Dry run of the admin console suite against the loopback server.

This script demonstrates the library API: it starts a loopback admin
server on an ephemeral port, points a HarnessConfig at it and runs every
step without a document server.

Usage:
    python examples/dry_run.py

The script will:
    1. Create placeholder documents in a temporary directory
    2. Start the loopback admin server
    3. Run the suite and print the verdict
"""

from __future__ import annotations

import sys
import tempfile
from pathlib import Path

from adminprobe import AdminHarness, HarnessConfig, LoopbackAdminServer
from adminprobe.server import ServerConfig


def main() -> int:
    """Run the suite against a loopback server and return the exit status."""
    server = LoopbackAdminServer(ServerConfig(port=0))
    server.start_background()

    try:
        with tempfile.TemporaryDirectory() as tmp:
            data = Path(tmp)
            for name in ("hello.odt", "insert-delete.odp"):
                (data / name).write_bytes(b"placeholder")

            config = HarnessConfig.model_validate(
                {
                    "server": {"uri": server.uri, "use_proxy": False},
                    "documents": {"directory": str(data)},
                    "timeouts": {"exchange": 2.0, "run": 20.0},
                }
            )

            with AdminHarness(config) as harness:
                print("=== Steps ===")
                for number, step in enumerate(harness.steps, start=1):
                    print(f"  {number:2d}. {step.name}")

                verdict = harness.run()

        print(f"\nVerdict: {verdict.value}")
        return verdict.exit_code
    finally:
        server.stop()


if __name__ == "__main__":
    sys.exit(main())
