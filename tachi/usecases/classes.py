from __future__ import annotations

import time
from collections.abc import Awaitable
from collections.abc import Callable
from collections.abc import Mapping
from typing import TypedDict

from tachi import webhooks
from tachi.constants.classes import ChunithmColours
from tachi.constants.classes import GitadoraColours
from tachi.constants.classes import SDVXVFClasses
from tachi.logging import ContextLogger
from tachi.repositories import class_achievements as class_achievements_repo
from tachi.repositories.game_stats import UserGameStats

Ratings = Mapping[str, float | None]

# resolves classes from outside the ratings, e.g. a dan fetched from a profile API
ClassHandler = Callable[
    [str, str, int, Ratings, ContextLogger],
    Awaitable[dict[str, int]],
]

StaticClassHandler = Callable[[Ratings], int | None]


class ClassDelta(TypedDict):
    set: str
    old: int | None
    new: int


def step(value: float, thresholds: list[tuple[float, int]]) -> int:
    """Map `value` onto the highest tier whose threshold it reaches."""
    result = thresholds[0][1]
    for minimum, tier in thresholds:
        if value >= minimum:
            result = tier
    return int(result)


# profile ratings are means over the best N, these scale them back up to the
# summed totals the games display
SDVX_PROFILE_SCALE = 50
GITADORA_PROFILE_SCALE = 50

_VF_COLOURS = ("SIENNA", "COBALT", "DANDELION", "CYAN", "SCARLET", "CORAL", "ARGENTO", "ELDORA", "CRIMSON", "IMPERIAL")

# (lowest VF6, spacing between sub-tiers) per colour
_VF_BANDS = (
    (0.0, 2.5),
    (10.0, 0.5),
    (12.0, 0.5),
    (14.0, 0.25),
    (15.0, 0.25),
    (16.0, 0.25),
    (17.0, 0.25),
    (18.0, 0.25),
    (19.0, 0.25),
    (20.0, 1.0),
)

SDVX_VF_THRESHOLDS: list[tuple[float, int]] = [
    (start + spacing * i, SDVXVFClasses[f"{colour}_{numeral}"])
    for colour, (start, spacing) in zip(_VF_COLOURS, _VF_BANDS)
    for i, numeral in enumerate(("I", "II", "III", "IV"))
]

GITADORA_COLOUR_THRESHOLDS: list[tuple[float, int]] = [
    (0, GitadoraColours.WHITE),
    (1000, GitadoraColours.ORANGE),
    (1500, GitadoraColours.ORANGE_GRADIENT),
    (2000, GitadoraColours.YELLOW),
    (2500, GitadoraColours.YELLOW_GRADIENT),
    (3000, GitadoraColours.GREEN),
    (3500, GitadoraColours.GREEN_GRADIENT),
    (4000, GitadoraColours.BLUE),
    (4500, GitadoraColours.BLUE_GRADIENT),
    (5000, GitadoraColours.PURPLE),
    (5500, GitadoraColours.PURPLE_GRADIENT),
    (6000, GitadoraColours.RED),
    (6500, GitadoraColours.RED_GRADIENT),
    (7000, GitadoraColours.BRONZE),
    (7500, GitadoraColours.SILVER),
    (8000, GitadoraColours.GOLD),
    (8500, GitadoraColours.RAINBOW),
]

CHUNITHM_COLOUR_THRESHOLDS: list[tuple[float, int]] = [
    (0, ChunithmColours.BLUE),
    (2, ChunithmColours.GREEN),
    (4, ChunithmColours.ORANGE),
    (7, ChunithmColours.RED),
    (10, ChunithmColours.PURPLE),
    (12, ChunithmColours.BRONZE),
    (13, ChunithmColours.SILVER),
    (14, ChunithmColours.GOLD),
    (14.5, ChunithmColours.PLATINUM),
    (15, ChunithmColours.RAINBOW),
]


def sdvx_vf_class(ratings: Ratings) -> int | None:
    vf6 = ratings.get("VF6")
    if vf6 is None:
        return None

    return step(vf6 * SDVX_PROFILE_SCALE, SDVX_VF_THRESHOLDS)


def gitadora_colour(ratings: Ratings) -> int | None:
    skill = ratings.get("skill")
    if skill is None:
        return None

    return step(skill * GITADORA_PROFILE_SCALE, GITADORA_COLOUR_THRESHOLDS)


def chunithm_colour(ratings: Ratings) -> int | None:
    rating = ratings.get("rating")
    if rating is None:
        return None

    return step(rating, CHUNITHM_COLOUR_THRESHOLDS)


STATIC_CLASS_HANDLERS: dict[tuple[str, str], dict[str, StaticClassHandler]] = {
    ("sdvx", "Single"): {"vfClass": sdvx_vf_class},
    ("gitadora", "Gita"): {"colour": gitadora_colour},
    ("gitadora", "Dora"): {"colour": gitadora_colour},
    ("chunithm", "Single"): {"colour": chunithm_colour},
}


async def resolve_classes(
    game: str,
    playtype: str,
    user_id: int,
    ratings: Ratings,
    class_handler: ClassHandler | None,
    logger: ContextLogger,
) -> dict[str, int]:
    """\
    Combine the static classes derived from `ratings` with whatever the
    import's own class handler reports. Static results win on collision.
    """
    custom: dict[str, int] = {}
    if class_handler is not None:
        try:
            custom = await class_handler(game, playtype, user_id, ratings, logger)
        except Exception:
            logger.exception(f"Custom class handler failed for {game}:{playtype}.")

    static: dict[str, int] = {}
    for class_set, handler in STATIC_CLASS_HANDLERS.get((game, playtype), {}).items():
        try:
            value = handler(ratings)
        except Exception:
            logger.exception(f"Static class handler for {class_set} failed.")
            continue

        if value is not None:
            static[class_set] = value

    return {**custom, **static}


def calculate_class_deltas(
    classes: Mapping[str, int],
    user_game_stats: UserGameStats | None,
    logger: ContextLogger,
) -> list[ClassDelta]:
    """\
    Classes only ever go up. A value above the stored one (or with nothing
    stored) is a delta; anything else is dropped.
    """
    stored = user_game_stats["classes"] if user_game_stats is not None else {}

    deltas: list[ClassDelta] = []
    for class_set, value in classes.items():
        old = stored.get(class_set)

        if old is None or value > old:
            deltas.append({"set": class_set, "old": old, "new": value})
        elif value < old:
            logger.warning(f"Ignored {class_set} regression from {old} to {value}.")

    return deltas


async def process_class_deltas(
    game: str,
    playtype: str,
    user_id: int,
    deltas: list[ClassDelta],
    logger: ContextLogger,
) -> None:
    """Record each delta as a class achievement and announce it."""
    if not deltas:
        return

    now = int(time.time() * 1000)

    await class_achievements_repo.create_many(
        [
            {
                "userID": user_id,
                "game": game,
                "playtype": playtype,
                "classSet": delta["set"],
                "classOldValue": delta["old"],
                "classValue": delta["new"],
                "timeAchieved": now,
            }
            for delta in deltas
        ],
    )

    for delta in deltas:
        logger.info(f"Class {delta['set']} improved from {delta['old']} to {delta['new']}.")
        webhooks.emit_class_update(user_id, game, playtype, delta["set"], delta["old"], delta["new"])
