"""
Standalone queue worker entry point.

    python -m geoagent
"""

import asyncio

from geoagent.queue_worker import run_queue_consumer


def main() -> None:
    asyncio.run(run_queue_consumer())


if __name__ == "__main__":
    main()
