"""\
The score import pipeline.

    parse -> convert -> dedupe -> persist -> PBs -> rankings -> UGS/classes

An import holds its user's import lock for its whole run, so two imports
for one user never aggregate at the same time.
"""

from __future__ import annotations

import asyncio
import contextlib
import hashlib
import json
import uuid
from collections.abc import AsyncIterable
from collections.abc import AsyncIterator
from collections.abc import Awaitable
from collections.abc import Callable
from dataclasses import dataclass
from dataclasses import field
from typing import Any

import tachi.settings
import tachi.state
from tachi.adapters.document_store import DuplicateKeyError
from tachi.constants.games import get_game_pt_config
from tachi.importers import ORPHANABLE_IMPORT_TYPES
from tachi.importers import run_converter
from tachi.importers.common import ConverterSuccess
from tachi.importers.common import InputParser
from tachi.importers.common import ParsedImport
from tachi.importers.common import now_ms
from tachi.importers.failures import ImportLockHeld
from tachi.importers.failures import KTDataNotFoundFailure
from tachi.importers.failures import LockContentionExhausted
from tachi.importers.failures import ScoreImportFatalError
from tachi.importers.failures import SkipScoreFailure
from tachi.logging import Ansi
from tachi.logging import ContextLogger
from tachi.logging import create_log_ctx
from tachi.logging import log
from tachi.repositories import import_trackers as import_trackers_repo
from tachi.repositories import imports as imports_repo
from tachi.repositories import orphan_scores as orphan_scores_repo
from tachi.repositories import scores as scores_repo
from tachi.repositories.imports import ImportDocument
from tachi.repositories.imports import ImportErrorInfo
from tachi.repositories.scores import Score
from tachi.usecases.calculated_data import calculate_data_for_game_pt
from tachi.usecases.game_stats import update_users_game_playtype_stats
from tachi.usecases.personal_bests import process_pbs
from tachi.usecases.personal_bests import reconcile_user_chart
from tachi.usecases.score_id import create_score_id

Sleep = Callable[[float], Awaitable[Any]]


def import_lock_key(user_id: int) -> str:
    return f"score-import:{user_id}"


def create_orphan_id(import_type: str, user_id: int, data: Any, context: dict[str, Any]) -> str:
    content = json.dumps(
        {"importType": import_type, "userID": user_id, "data": data, "context": context},
        sort_keys=True,
        default=str,
    )
    return hashlib.sha256(content.encode()).hexdigest()


async def _collect(iterable: Any) -> list[Any]:
    if isinstance(iterable, AsyncIterable):
        return [item async for item in iterable]

    return list(iterable)


async def convert_record(
    index: int,
    data: Any,
    parsed: ParsedImport,
    import_type: str,
    user_id: int,
    logger: ContextLogger,
) -> ConverterSuccess | ImportErrorInfo | None:
    """Convert one record, returning the dry score or the error to report."""
    result = await run_converter(import_type, data, parsed.context, logger)

    if isinstance(result, ConverterSuccess):
        return result

    if isinstance(result, SkipScoreFailure):
        logger.verbose(f"Skipped record {index}: {result.message}")
        return None

    if isinstance(result, KTDataNotFoundFailure) and import_type in ORPHANABLE_IMPORT_TYPES:
        inserted = await orphan_scores_repo.upsert(
            {
                "orphanID": create_orphan_id(import_type, user_id, data, parsed.context),
                "importType": import_type,
                "userID": user_id,
                "game": parsed.game,
                "data": data,
                "context": parsed.context,
                "errMsg": result.message,
                "timeInserted": now_ms(),
            },
        )
        if inserted:
            logger.verbose(f"Record {index} queued as an orphan: {result.message}")

    if not isinstance(result, KTDataNotFoundFailure):
        logger.verbose(f"Record {index} failed with {result.error_type}: {result.message}")

    return {
        "type": result.error_type,
        "message": result.message,
        "index": index,
        "data": data,
    }


async def persist_score(
    user_id: int,
    success: ConverterSuccess,
    import_type: str,
    logger: ContextLogger,
) -> Score | None:
    """\
    Hydrate and insert a converted score.
    Returns None when an identical score already exists.
    """
    dry_score = success.dry_score
    chart = success.chart
    score_id = create_score_id(user_id, dry_score, chart["chartID"])

    # fast path; the store's unique index on scoreID is what actually
    # settles two identical submissions racing each other
    if await scores_repo.fetch_one(score_id) is not None:
        logger.verbose(f"Skipped duplicate score {score_id}.")
        return None

    config = get_game_pt_config(chart["game"], chart["playtype"])
    dry_score_data = dry_score["scoreData"]

    calculated_data = await calculate_data_for_game_pt(
        chart["game"],
        chart["playtype"],
        chart,
        dry_score,
        None,
        logger,
    )

    score: Score = {
        "scoreID": score_id,
        "userID": user_id,
        "chartID": chart["chartID"],
        "songID": success.song["id"],
        "game": chart["game"],
        "playtype": chart["playtype"],
        "isPrimary": chart["isPrimary"],
        "service": dry_score["service"],
        "importType": import_type,
        "comment": dry_score["comment"],
        "timeAdded": now_ms(),
        "timeAchieved": dry_score["timeAchieved"],
        "scoreData": {
            "score": dry_score_data["score"],
            "percent": dry_score_data["percent"],
            "grade": dry_score_data["grade"],
            "gradeIndex": config.grade_index(dry_score_data["grade"]),
            "lamp": dry_score_data["lamp"],
            "lampIndex": config.lamp_index(dry_score_data["lamp"]),
            "judgements": dict(dry_score_data["judgements"]),
            "hitMeta": dict(dry_score_data["hitMeta"]),
        },
        "scoreMeta": dict(dry_score["scoreMeta"]),
        "calculatedData": calculated_data,
    }

    try:
        await scores_repo.create(score)
    except DuplicateKeyError:
        logger.verbose(f"Skipped duplicate score {score_id} (lost insert race).")
        return None

    return score


async def _import_one(
    index: int,
    data: Any,
    parsed: ParsedImport,
    import_type: str,
    user_id: int,
    logger: ContextLogger,
) -> Score | ImportErrorInfo | None:
    converted = await convert_record(index, data, parsed, import_type, user_id, logger)
    if not isinstance(converted, ConverterSuccess):
        return converted

    try:
        return await persist_score(user_id, converted, import_type, logger)
    except Exception as exc:
        logger.exception(f"Failed to persist record {index}.")
        return {
            "type": "InternalError",
            "message": f"An internal error occurred while saving this score. ({type(exc).__name__})",
            "index": index,
            "data": data,
        }


async def aggregate(
    user_id: int,
    scores: list[Score],
    parsed: ParsedImport,
    logger: ContextLogger,
) -> list[dict[str, Any]]:
    """Rebuild everything derived from `scores`, returning the class deltas."""
    await process_pbs(user_id, {s["chartID"] for s in scores}, logger)

    class_deltas: list[dict[str, Any]] = []
    for game, playtype in sorted({(s["game"], s["playtype"]) for s in scores}):
        deltas = await update_users_game_playtype_stats(
            game,
            playtype,
            user_id,
            parsed.class_handler,
            logger,
        )
        class_deltas.extend({"game": game, "playtype": playtype, **delta} for delta in deltas)

    return class_deltas


async def rollback(user_id: int, scores: list[Score], logger: ContextLogger) -> None:
    """\
    Remove `scores` and rebuild whatever a partial aggregation derived from
    them, so the user is left as if the import never ran.
    """
    await scores_repo.delete_many([s["scoreID"] for s in scores])

    for chart_id in sorted({s["chartID"] for s in scores}):
        try:
            await reconcile_user_chart(user_id, chart_id, logger)
        except Exception:
            logger.exception(f"Failed to restore PB for user {user_id} on {chart_id}.")

    for game, playtype in sorted({(s["game"], s["playtype"]) for s in scores}):
        try:
            await update_users_game_playtype_stats(game, playtype, user_id, None, logger)
        except Exception:
            logger.exception(f"Failed to restore {game} {playtype} stats for user {user_id}.")


async def score_import_main(
    user_id: int,
    user_intent: bool,
    import_type: str,
    input_parser: InputParser,
    import_id: str | None = None,
) -> ImportDocument:
    """\
    Run one import for `user_id`.

    Takes the user's import lock exactly once; if another import holds it,
    ImportLockHeld is raised and nothing is written. Use make_score_import
    to retry with backoff instead.
    """
    import_id = import_id or uuid.uuid4().hex
    lock_key = import_lock_key(user_id)

    token = await tachi.state.services.lock.acquire(lock_key, tachi.settings.IMPORT_LOCK_TTL)
    if token is None:
        raise ImportLockHeld(user_id)

    try:
        return await _run_import(user_id, user_intent, import_type, input_parser, import_id)
    finally:
        await tachi.state.services.lock.release(lock_key, token)


async def _run_import(
    user_id: int,
    user_intent: bool,
    import_type: str,
    input_parser: InputParser,
    import_id: str,
) -> ImportDocument:
    logger = create_log_ctx(__name__, f"Import {import_id}", f"User {user_id}", import_type)
    time_started = now_ms()

    await import_trackers_repo.create(import_id, user_id, import_type, user_intent, time_started)

    try:
        await import_trackers_repo.set_phase(import_id, "PARSING")
        parsed = await input_parser(logger)
        records = await _collect(parsed.iterable)
    except ScoreImportFatalError as exc:
        logger.info(f"Import failed to parse: {exc.description}")
        await import_trackers_repo.mark_failed(import_id, exc.status_code, exc.description)
        raise

    logger.verbose(f"Parsed {len(records)} records.")

    await import_trackers_repo.set_phase(import_id, "CONVERTING")
    results = await asyncio.gather(
        *(
            _import_one(index, data, parsed, import_type, user_id, logger)
            for index, data in enumerate(records)
        ),
    )

    await import_trackers_repo.set_phase(import_id, "PERSISTING")
    inserted: list[Score] = []
    errors: list[ImportErrorInfo] = []
    for result in results:
        if result is None:
            continue
        if "scoreID" in result:
            inserted.append(result)  # type: ignore[arg-type]
        else:
            errors.append(result)  # type: ignore[arg-type]

    errors.sort(key=lambda e: e["index"])
    logger.verbose(f"Inserted {len(inserted)} scores with {len(errors)} errors.")

    await import_trackers_repo.set_phase(import_id, "AGGREGATING")
    try:
        class_deltas = await aggregate(user_id, inserted, parsed, logger)
    except Exception as exc:
        # no score may outlive a failed aggregation, or a retry would see
        # them as duplicates and never aggregate them
        logger.exception("Aggregation failed, removing this import's scores.")
        await rollback(user_id, inserted, logger)
        await import_trackers_repo.mark_failed(import_id, 500, "Failed to process this import.")
        raise ScoreImportFatalError(500, "Failed to process this import.") from exc

    import_doc: ImportDocument = {
        "importID": import_id,
        "userID": user_id,
        "userIntent": user_intent,
        "importType": import_type,
        "game": parsed.game,
        "playtypes": sorted({s["playtype"] for s in inserted}),
        "timeStarted": time_started,
        "timeFinished": now_ms(),
        "scoreIDs": [s["scoreID"] for s in inserted],
        "errors": errors,
        "classDeltas": class_deltas,
    }

    await imports_repo.create(import_doc)
    await import_trackers_repo.delete(import_id)

    logger.info(
        f"Import finished: {len(records)} records, {len(inserted)} new scores, {len(errors)} errors.",
    )

    return import_doc


@dataclass
class ScoreImportJob:
    user_id: int
    user_intent: bool
    import_type: str
    input_parser: InputParser
    import_id: str = field(default_factory=lambda: uuid.uuid4().hex)


def backoff_delay(attempt: int) -> float:
    return tachi.settings.IMPORT_LOCK_BACKOFF_BASE * 2**attempt


@contextlib.asynccontextmanager
async def hold_import_lock(user_id: int, sleep: Sleep = asyncio.sleep) -> AsyncIterator[None]:
    """\
    Hold `user_id`'s import lock, waiting out whoever already has it.

    Anything that rebuilds a user's PBs or profile stats runs under this
    lock. A held lock is retried IMPORT_LOCK_RETRY_COUNT times with
    exponential backoff, then LockContentionExhausted is raised.
    """
    lock_key = import_lock_key(user_id)
    retries = tachi.settings.IMPORT_LOCK_RETRY_COUNT

    for attempt in range(retries + 1):
        token = await tachi.state.services.lock.acquire(lock_key, tachi.settings.IMPORT_LOCK_TTL)
        if token is not None:
            break

        if attempt == retries:
            log(
                f"User {user_id} could not get their import lock after {retries + 1} attempts. "
                "Has it gotten stuck?",
                Ansi.LRED,
            )
            raise LockContentionExhausted(user_id, retries + 1)

        delay = backoff_delay(attempt)
        log(f"User {user_id} already has an import ongoing. Backing off for {delay:.2f} seconds.")
        await sleep(delay)

    try:
        yield
    finally:
        await tachi.state.services.lock.release(lock_key, token)


async def make_score_import(job: ScoreImportJob, sleep: Sleep = asyncio.sleep) -> ImportDocument:
    """Run an import, waiting out an import the user already has in flight."""
    async with hold_import_lock(job.user_id, sleep):
        return await _run_import(
            job.user_id,
            job.user_intent,
            job.import_type,
            job.input_parser,
            job.import_id,
        )
