from __future__ import annotations

from collections.abc import Awaitable
from collections.abc import Callable
from collections.abc import Mapping
from typing import Any

from tachi.constants.games import get_game_pt_config
from tachi.importers.failures import InternalFailure
from tachi.logging import ContextLogger
from tachi.repositories import bpi_data as bpi_data_repo
from tachi.usecases import rating_formulas

CalculatedData = dict[str, float | None]

Calculator = Callable[
    [Mapping[str, Any], Mapping[str, Any], float | None, ContextLogger],
    Awaitable[CalculatedData],
]


def _score_data(dry_score: Mapping[str, Any]) -> Mapping[str, Any]:
    return dry_score["scoreData"]


async def calculate_iidx(
    chart: Mapping[str, Any],
    dry_score: Mapping[str, Any],
    esd: float | None,
    logger: ContextLogger,
) -> CalculatedData:
    score_data = _score_data(dry_score)
    config = get_game_pt_config(chart["game"], chart["playtype"])
    lamp_index = config.lamp_index(score_data["lamp"])

    bpi = None
    bpi_data = await bpi_data_repo.fetch_one(chart["chartID"])
    if bpi_data is not None:
        max_score = chart["data"]["notecount"] * 2
        try:
            bpi = rating_formulas.calculate_bpi(
                score_data["score"],
                bpi_data["kavg"],
                bpi_data["wr"],
                max_score,
                bpi_data["coef"],
            )
        except (ValueError, ZeroDivisionError):
            logger.warning(f"Could not calculate BPI for {chart['chartID']}, bad BPI data?")

    return {
        "ktLampRating": rating_formulas.calculate_kt_lamp_rating(lamp_index, config.lamps, chart),
        "BPI": bpi,
    }


async def calculate_bms(
    chart: Mapping[str, Any],
    dry_score: Mapping[str, Any],
    esd: float | None,
    logger: ContextLogger,
) -> CalculatedData:
    config = get_game_pt_config(chart["game"], chart["playtype"])
    lamp_index = config.lamp_index(_score_data(dry_score)["lamp"])

    return {"sieglinde": rating_formulas.calculate_sieglinde(lamp_index, config.lamps, chart)}


async def calculate_sdvx(
    chart: Mapping[str, Any],
    dry_score: Mapping[str, Any],
    esd: float | None,
    logger: ContextLogger,
) -> CalculatedData:
    score_data = _score_data(dry_score)

    return {
        "VF6": rating_formulas.calculate_vf6(
            score_data["score"],
            score_data["grade"],
            score_data["lamp"],
            chart["levelNum"],
        ),
    }


async def calculate_chunithm(
    chart: Mapping[str, Any],
    dry_score: Mapping[str, Any],
    esd: float | None,
    logger: ContextLogger,
) -> CalculatedData:
    score = _score_data(dry_score)["score"]
    return {"rating": rating_formulas.calculate_chunithm_rating(score, chart["levelNum"])}


async def calculate_gitadora(
    chart: Mapping[str, Any],
    dry_score: Mapping[str, Any],
    esd: float | None,
    logger: ContextLogger,
) -> CalculatedData:
    percent = _score_data(dry_score)["percent"]
    return {"skill": rating_formulas.calculate_gitadora_skill(percent, chart["levelNum"])}


async def calculate_ddr(
    chart: Mapping[str, Any],
    dry_score: Mapping[str, Any],
    esd: float | None,
    logger: ContextLogger,
) -> CalculatedData:
    score_data = _score_data(dry_score)
    config = get_game_pt_config(chart["game"], chart["playtype"])
    if config.clear_lamp is None:
        raise InternalFailure(f"No clear lamp is configured for {config.game} {config.playtype}.")

    cleared = config.lamp_index(score_data["lamp"]) >= config.lamp_index(config.clear_lamp)

    return {
        "MFCP": rating_formulas.calculate_mfcp(score_data["lamp"], chart["levelNum"]),
        "ktRating": rating_formulas.calculate_ddr_kt_rating(
            score_data["score"],
            chart["levelNum"],
            cleared,
        ),
    }


CALCULATORS: dict[tuple[str, str], Calculator] = {
    ("iidx", "SP"): calculate_iidx,
    ("iidx", "DP"): calculate_iidx,
    ("bms", "7K"): calculate_bms,
    ("bms", "14K"): calculate_bms,
    ("sdvx", "Single"): calculate_sdvx,
    ("usc", "Controller"): calculate_sdvx,
    ("usc", "Keyboard"): calculate_sdvx,
    ("chunithm", "Single"): calculate_chunithm,
    ("gitadora", "Gita"): calculate_gitadora,
    ("gitadora", "Dora"): calculate_gitadora,
    ("ddr", "SP"): calculate_ddr,
    ("ddr", "DP"): calculate_ddr,
}


async def calculate_data_for_game_pt(
    game: str,
    playtype: str,
    chart: Mapping[str, Any],
    dry_score: Mapping[str, Any],
    esd: float | None,
    logger: ContextLogger,
) -> CalculatedData:
    """\
    Compute the named performance stats for a score.

    A (game, playtype) without a calculator yields no stats rather than an
    error: a score with no calculated data is still a valid score.
    """
    calculator = CALCULATORS.get((game, playtype))

    if calculator is None:
        logger.error(f"Invalid game/playtype combination of {game}:{playtype}.")
        return {}

    return await calculator(chart, dry_score, esd, logger)
