"""
Petalwise - RAG Verification Script
=====================================
Runs ``RAGDiagnostics`` against the configured stack and prints one
line per check, then a status tally.

Exit code is ``1`` when any check reports ``error``.

Usage:
    python -m petalwise.scripts.verify_rag
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

_ICONS = {"success": "✅", "warning": "⚠️ ", "error": "❌"}


async def _run() -> int:
    from petalwise.src.core.bootstrap import build_services
    from petalwise.src.core.diagnostics import summarize

    services = build_services()
    results = await services.diagnostics.run()

    print()
    print("=" * 60)
    print("  PETALWISE — RAG Diagnostics")
    print("=" * 60)
    for result in results:
        print(f"  {_ICONS[result.status]} {result.name:<20} {result.message}")
        if result.details:
            print(f"      {result.details}")
    counts = summarize(results)
    print("-" * 60)
    print(f"  {counts['success']} passed, {counts['warning']} warning(s), {counts['error']} error(s)")
    print("=" * 60)
    print()
    return 1 if counts["error"] else 0


def main() -> None:
    sys.exit(asyncio.run(_run()))


if __name__ == "__main__":
    main()
