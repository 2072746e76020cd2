"""Report data-consistency problems in the inbox and knowledge store.

Checks:
  - approved / auto_sent messages whose draft is not approved with a final response
  - rejected messages whose draft is not marked unapproved
  - users holding more knowledge entries than the collection cap

    python scripts/check_consistency.py

Exits 1 when any problem is found.
"""
import asyncio
import logging
import sys
from pathlib import Path

# Resolve project root so imports work when run from any cwd
_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_ROOT))

from db.connection import dispose_engine, get_db
from db.repositories import knowledge as knowledge_repo
from db.repositories import messages as messages_repo

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
logger = logging.getLogger(__name__)


async def main() -> int:
    try:
        async with get_db() as session:
            problems = await messages_repo.find_inconsistencies(session)
            problems += await knowledge_repo.find_cap_violations(session)
    finally:
        await dispose_engine()

    for problem in problems:
        logger.error("  %s", problem)
    if problems:
        logger.error("Found %d problem(s)", len(problems))
        return 1
    logger.info("No consistency problems found.")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
