"""\
Corrective operations on stored scores.

Scores are never edited during normal operation. When one has to be fixed
or removed, everything derived from it (PBs, rankings, import documents and
profile stats) is rebuilt here.
"""

from __future__ import annotations

import contextlib

from tachi.adapters.document_store import DuplicateKeyError
from tachi.constants.games import get_game_pt_config
from tachi.logging import create_log_ctx
from tachi.repositories import charts as charts_repo
from tachi.repositories import imports as imports_repo
from tachi.repositories import personal_bests as pbs_repo
from tachi.repositories import scores as scores_repo
from tachi.repositories.scores import Score
from tachi.usecases.calculated_data import calculate_data_for_game_pt
from tachi.usecases.game_stats import update_users_game_playtype_stats
from tachi.usecases.personal_bests import reconcile_user_chart
from tachi.usecases.score_id import create_score_id
from tachi.usecases.score_import import hold_import_lock


class ScoreMutationError(Exception):
    pass


async def replace_score_id_in_imports(old_score_id: str, new_score_id: str | None) -> int:
    """Point import documents at `new_score_id`, or drop the reference if None."""
    import_docs = await imports_repo.fetch_containing_score(old_score_id)

    for import_doc in import_docs:
        score_ids = []
        for score_id in import_doc["scoreIDs"]:
            if score_id != old_score_id:
                score_ids.append(score_id)
            elif new_score_id is not None and new_score_id not in score_ids:
                score_ids.append(new_score_id)

        await imports_repo.set_score_ids(import_doc["importID"], score_ids)

    return len(import_docs)


async def update_score(
    old_score: Score,
    new_score: Score,
    update_old_chart: bool = True,
) -> Score:
    """\
    Replace `old_score` with `new_score`.

    The new score's ID and calculated data are derived here, so callers
    don't need to set them. If the new ID collides with an existing score,
    the old score is removed and references move to the existing one.
    """
    user_id = old_score["userID"]
    chart_id = new_score["chartID"]

    chart = await charts_repo.fetch_one(chart_id)
    if chart is None:
        logger = create_log_ctx(__name__, "Update Score", old_score["scoreID"])
        logger.severe(f"Chart {chart_id} does not exist, yet a score update was called for it?")
        raise ScoreMutationError(f"Chart {chart_id} does not exist.")

    old_score_id = old_score["scoreID"]
    new_score_id = create_score_id(new_score["userID"], new_score, chart_id)

    logger = create_log_ctx(__name__, "Update Score", old_score_id, new_score_id, f"User {user_id}")
    logger.verbose("Received update score request.")

    config = get_game_pt_config(chart["game"], chart["playtype"])
    new_score = {
        **new_score,
        "scoreID": new_score_id,
        "scoreData": {
            **new_score["scoreData"],
            "gradeIndex": config.grade_index(new_score["scoreData"]["grade"]),
            "lampIndex": config.lamp_index(new_score["scoreData"]["lamp"]),
        },
    }  # type: ignore[assignment]
    new_score["calculatedData"] = await calculate_data_for_game_pt(
        chart["game"],
        chart["playtype"],
        chart,
        new_score,
        None,
        logger,
    )

    async with hold_import_lock(user_id):
        try:
            await scores_repo.replace(old_score_id, new_score)
        except DuplicateKeyError:
            logger.warning(
                f"Score ID {new_score_id} already existed, this update caused a collision. "
                "Removing old score and updating old references anyway.",
            )
            await scores_repo.delete(old_score_id)

        await reconcile_user_chart(user_id, chart_id, logger)
        if update_old_chart and old_score["chartID"] != chart_id:
            await reconcile_user_chart(user_id, old_score["chartID"], logger)

        updated = await replace_score_id_in_imports(old_score_id, new_score_id)
        logger.verbose(f"Updated {updated} imports.")

        await update_users_game_playtype_stats(
            chart["game"],
            chart["playtype"],
            user_id,
            None,
            logger,
        )

    logger.verbose("Done updating score.")
    return new_score


async def delete_score(score: Score) -> None:
    logger = create_log_ctx(__name__, "Delete Score", score["scoreID"], f"User {score['userID']}")

    async with hold_import_lock(score["userID"]):
        await scores_repo.delete(score["scoreID"])
        await replace_score_id_in_imports(score["scoreID"], None)
        await reconcile_user_chart(score["userID"], score["chartID"], logger)

        await update_users_game_playtype_stats(
            score["game"],
            score["playtype"],
            score["userID"],
            None,
            logger,
        )

    logger.info("Deleted score.")


async def destroy_chart(chart_id: str) -> None:
    """Remove a chart along with every score and PB on it."""
    logger = create_log_ctx(__name__, "Destroy Chart", chart_id)

    chart = await charts_repo.fetch_one(chart_id)
    if chart is None:
        logger.severe(f"Chart {chart_id} does not exist, yet it was asked to be destroyed?")
        raise ScoreMutationError(f"Chart {chart_id} does not exist.")

    scores = await scores_repo.fetch_many(chart_id=chart_id)
    user_ids = sorted({s["userID"] for s in scores})

    # locks are always taken in user order, so two of these never deadlock
    async with contextlib.AsyncExitStack() as stack:
        for user_id in user_ids:
            await stack.enter_async_context(hold_import_lock(user_id))

        for score in scores:
            await replace_score_id_in_imports(score["scoreID"], None)

        await charts_repo.delete(chart_id)
        await scores_repo.delete_for_chart(chart_id)
        await pbs_repo.delete_for_chart(chart_id)

        for user_id in user_ids:
            await update_users_game_playtype_stats(
                chart["game"],
                chart["playtype"],
                user_id,
                None,
                logger,
            )

    logger.info(f"Destroyed chart and {len(scores)} scores.")
