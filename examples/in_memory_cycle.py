#!/usr/bin/env python3
"""
In-Memory Remediation Cycle Example

Runs two cycles against the in-memory adapters:

1. ``orders-api`` times out and gets its timeout raised; the change commits.
2. ``billing-worker`` runs out of memory, but the change never takes, so the
   attempt is verified, found wanting and rolled back.
3. ``reports`` is denied access to a table; permission errors are reported
   with guidance and never changed automatically.

The second cycle shows cooldowns carrying over.

Usage:
    python examples/in_memory_cycle.py
"""

import asyncio
import sys
from pathlib import Path

# Add src to path for running from examples directory
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from lambda_autofix.config import AutoFixConfig
from lambda_autofix.integrations.memory import InMemoryControlPlane, InMemorySignalSource
from lambda_autofix.logging_config import setup_logging
from lambda_autofix.metrics import get_metrics_text
from lambda_autofix.remediation import RemediationOrchestrator
from lambda_autofix.reporting import format_run_summary


async def main():
    setup_logging(level="INFO", include_timestamp=False)

    signals = InMemorySignalSource()
    plane = InMemoryControlPlane(ignore_configuration=["billing-worker"])

    signals.add_errors("orders-api", ["Task timed out after 3.00 seconds"] * 12, total_invocations=80)
    signals.add_errors(
        "billing-worker",
        ["Runtime exited with error: signal: killed (out of memory)"] * 8,
        total_invocations=20,
    )
    signals.add_errors(
        "reports",
        ["AccessDeniedException: not authorized to perform dynamodb:Query"] * 6,
    )
    for resource_id in ("orders-api", "billing-worker", "reports", "healthy-api"):
        plane.add_resource(resource_id)

    config = AutoFixConfig(
        resources=["orders-api", "billing-worker", "reports", "healthy-api"],
        auto_fix_enabled=True,
        max_concurrent_fixes=2,
        settle_delay_seconds=0.1,
        inter_batch_delay_seconds=0.1,
    )

    orchestrator = RemediationOrchestrator(signals, plane)

    print("=" * 60)
    print("Cycle 1")
    print("=" * 60)
    summary = await orchestrator.run_cycle(config)
    print(format_run_summary(summary))
    print()

    print("=" * 60)
    print("Cycle 2 (cooldowns in effect)")
    print("=" * 60)
    summary = await orchestrator.run_cycle(config)
    print(format_run_summary(summary, show_guidance=False))
    print()

    print("=" * 60)
    print("Metrics")
    print("=" * 60)
    print(get_metrics_text())


if __name__ == "__main__":
    asyncio.run(main())
