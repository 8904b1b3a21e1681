"""
Extractor Module Entry Point

Allows execution via: python -m clickdown.apps.extractor

Delegates to scheduler for all execution modes (scheduled and RUN_ONCE).
"""

import asyncio

from clickdown.apps.extractor.scheduler import main


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
