from __future__ import annotations

from tachi.logging import ContextLogger
from tachi.repositories import game_settings as game_settings_repo
from tachi.repositories import game_stats as game_stats_repo
from tachi.usecases.classes import ClassDelta
from tachi.usecases.classes import ClassHandler
from tachi.usecases.classes import calculate_class_deltas
from tachi.usecases.classes import process_class_deltas
from tachi.usecases.classes import resolve_classes
from tachi.usecases.ratings import calculate_ratings


async def update_users_game_playtype_stats(
    game: str,
    playtype: str,
    user_id: int,
    class_handler: ClassHandler | None,
    logger: ContextLogger,
) -> list[ClassDelta]:
    """\
    Recompute a user's profile ratings and classes for one game + playtype.
    Returns the class improvements this caused.
    """
    ratings = await calculate_ratings(game, playtype, user_id, logger)
    classes = await resolve_classes(game, playtype, user_id, ratings, class_handler, logger)

    user_game_stats = await game_stats_repo.fetch_one(user_id, game, playtype)
    deltas = calculate_class_deltas(classes, user_game_stats, logger)

    stored_classes = dict(user_game_stats["classes"]) if user_game_stats is not None else {}
    for delta in deltas:
        stored_classes[delta["set"]] = delta["new"]

    await game_stats_repo.upsert(user_id, game, playtype, ratings, stored_classes)

    if user_game_stats is None:
        logger.info(f"First time playing {game}:{playtype}, creating default settings.")
        await game_settings_repo.create_default(user_id, game, playtype)

    await process_class_deltas(game, playtype, user_id, deltas, logger)

    return deltas
