"""
Scoring worker: scores stored leads and persists their decisions.
"""
import asyncio
import sys
from typing import Iterable, List

from leadscore.core.config import settings
from leadscore.core.exceptions import ConfigError, EngineError
from leadscore.core.logging import configure_structlog, get_logger
from leadscore.db.session import dispose_engine
from leadscore.db.store import SqlLeadStore
from leadscore.services.engine import BatchResult, LeadScoringEngine
from leadscore.services.policies import load_engine_policy

logger = get_logger("workers.scoring")


def _chunks(items: List[str], size: int) -> Iterable[List[str]]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


def read_lead_ids(argv: List[str], stdin) -> List[str]:
    """Lead ids from the command line, or one per line from stdin."""
    if argv:
        raw = argv
    else:
        raw = [line.strip() for line in stdin]
    return list(dict.fromkeys(i for i in raw if i))


async def process_scoring_job(engine: LeadScoringEngine, store: SqlLeadStore, lead_ids: List[str]) -> BatchResult:
    """
    Score one chunk of stored leads.
    """
    leads = await store.get_leads(lead_ids)
    found = {lead.id for lead in leads}
    for missing in (i for i in lead_ids if i not in found):
        logger.warning("scoring_worker.unknown_lead", lead_id=missing)

    result = await engine.process_batch(leads)
    for failure in result.failed:
        logger.warning(
            "scoring_worker.lead_failed",
            lead_id=failure.lead_id,
            code=failure.code,
            message=failure.message,
        )
    return result


async def worker_main(argv: List[str]) -> int:
    """
    Main worker loop.
    Processes lead ids from command-line arguments or stdin.
    """
    logger.info("scoring_worker.starting")

    if not settings.scoring_policy_file:
        logger.error("scoring_worker.no_policy")
        return 1

    try:
        policy = load_engine_policy(settings.scoring_policy_file)
    except ConfigError as e:
        logger.error("scoring_worker.invalid_policy", code=e.code, message=e.message)
        return 1

    lead_ids = read_lead_ids(argv, sys.stdin)
    if not lead_ids:
        logger.warning("scoring_worker.no_jobs")
        return 0

    store = SqlLeadStore()
    engine = LeadScoringEngine.from_policy(
        policy,
        candidate_finder=store,
        decision_store=store,
        lead_store=store,
    )

    processed = failed = 0
    try:
        for chunk in _chunks(lead_ids, settings.scoring_batch_size):
            try:
                result = await process_scoring_job(engine, store, chunk)
            except EngineError as e:
                logger.error("scoring_worker.chunk_error", code=e.code, message=e.message, leads=len(chunk))
                failed += len(chunk)
                continue
            processed += len(result.processed)
            failed += len(result.failed)
    finally:
        await dispose_engine()

    logger.info("scoring_worker.completed", processed=processed, failed=failed)
    return 0 if failed == 0 else 1


def main() -> int:
    configure_structlog()
    return asyncio.run(worker_main(sys.argv[1:]))


if __name__ == "__main__":
    sys.exit(main())
