"""\
Unknown charts are held as orphans until enough distinct users submit
scores on them, at which point they are promoted into the real chart
catalog and the queued scores are imported.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
from typing import Any

from tachi.adapters.document_store import DuplicateKeyError
from tachi.importers.common import ParsedImport
from tachi.importers.common import now_ms
from tachi.importers.failures import ScoreImportFatalError
from tachi.logging import ContextLogger
from tachi.logging import create_log_ctx
from tachi.repositories import charts as charts_repo
from tachi.repositories import orphan_charts as orphan_charts_repo
from tachi.repositories import orphan_scores as orphan_scores_repo
from tachi.repositories import songs as songs_repo
from tachi.repositories.charts import Chart
from tachi.repositories.orphan_scores import OrphanScore
from tachi.repositories.songs import Song
from tachi.usecases.score_import import ScoreImportJob
from tachi.usecases.score_import import Sleep
from tachi.usecases.score_import import make_score_import


def create_orphan_chart_id(game_pt_id: str, match_query: dict[str, Any]) -> str:
    content = json.dumps({"idString": game_pt_id, "match": match_query}, sort_keys=True)
    return hashlib.sha256(content.encode()).hexdigest()


async def promote(chart: Chart, song: Song, logger: ContextLogger) -> None:
    try:
        await songs_repo.create(song)
    except DuplicateKeyError:
        logger.verbose(f"Song {song['id']} already exists, reusing it.")

    try:
        await charts_repo.create(chart)
    except DuplicateKeyError:
        logger.warning(f"Chart {chart['chartID']} was already in the catalog when promoted.")


async def handle_orphan_queue(
    game_pt_id: str,
    game: str,
    chart: Chart,
    song: Song,
    match_query: dict[str, Any],
    threshold: int,
    user_id: int,
    human_name: str,
) -> Chart | None:
    """\
    Record `user_id` submitting on an unknown chart.

    Returns the canonical chart once `threshold` distinct users have
    submitted on it and it is in the catalog, otherwise None. Only one
    caller ever performs the promotion, however many cross the threshold
    at once.
    """
    orphan_id = create_orphan_chart_id(game_pt_id, match_query)
    logger = create_log_ctx(__name__, "Orphan Queue", human_name)

    orphan = await orphan_charts_repo.record_submission(
        orphan_id,
        user_id,
        {
            "idString": game_pt_id,
            "game": game,
            "match": match_query,
            "chartDoc": chart,
            "songDoc": song,
            "humanisedName": human_name,
            "timeInserted": now_ms(),
        },
    )

    submitters = len(orphan["userIDs"])

    if not orphan["promoted"] and submitters < threshold:
        logger.verbose(f"Orphan has {submitters}/{threshold} submitters.")
        return None

    if not await orphan_charts_repo.claim_promotion(orphan_id):
        # another caller is promoting it, and may not have inserted the chart yet
        return await charts_repo.fetch_by_query(game, match_query)

    logger.info(f"Promoting orphan chart after {submitters} distinct submitters.")
    await promote(orphan["chartDoc"], orphan["songDoc"], logger)  # type: ignore[arg-type]

    return orphan["chartDoc"]  # type: ignore[return-value]


def _create_orphan_parser(orphan: OrphanScore) -> Any:
    async def parse(logger: ContextLogger) -> ParsedImport:
        return ParsedImport(
            iterable=[orphan["data"]],
            game=orphan["game"],
            context=orphan["context"],
        )

    return parse


async def reprocess_orphan(
    orphan: OrphanScore,
    logger: ContextLogger,
    sleep: Sleep = asyncio.sleep,
) -> bool:
    """\
    Push an orphan score through the normal import path, waiting for the
    owner's import lock if they have an import in flight.
    Returns True if it imported and was removed from the queue.
    """
    job = ScoreImportJob(
        user_id=orphan["userID"],
        user_intent=False,
        import_type=orphan["importType"],
        input_parser=_create_orphan_parser(orphan),
    )

    try:
        import_doc = await make_score_import(job, sleep=sleep)
    except ScoreImportFatalError as exc:
        logger.warning(f"Could not reprocess orphan {orphan['orphanID']}: {exc.description}")
        return False

    if any(error["type"] == "KTDataNotFound" for error in import_doc["errors"]):
        logger.verbose(f"Orphan {orphan['orphanID']} still has no chart.")
        return False

    await orphan_scores_repo.delete(orphan["orphanID"])
    return True


async def reprocess_orphans(
    query: dict[str, Any],
    logger: ContextLogger,
    sleep: Sleep = asyncio.sleep,
) -> int:
    """Reprocess every queued orphan score matching `query`, returning how many imported."""
    orphans = await orphan_scores_repo.fetch_many(query)
    if not orphans:
        return 0

    logger.verbose(f"Reprocessing {len(orphans)} orphan scores.")

    imported = 0
    for orphan in orphans:
        if await reprocess_orphan(orphan, logger, sleep):
            imported += 1

    return imported
