"""\
Per-game rating formulas.

Every function here is pure: the same inputs always give the same output,
which keeps recalculation and deduplication sound.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any

# iidx


def pika_great_function(ex_score: float, max_score: float) -> float:
    if ex_score >= max_score:
        return max_score * 0.8

    return 1 + (ex_score / max_score - 0.5) / (1 - ex_score / max_score)


def calculate_bpi(
    ex_score: int,
    kavg: int,
    wr: int,
    max_score: int,
    pow_coef: float | None = None,
) -> float:
    """Beat Power Index: 0 at the kaiden average, 100 at the world record."""
    if pow_coef is None or pow_coef == -1:
        pow_coef = 1.175

    your_pgf = pika_great_function(ex_score, max_score)
    kavg_pgf = pika_great_function(kavg, max_score)
    wr_pgf = pika_great_function(wr, max_score)

    your_norm = your_pgf / kavg_pgf
    wr_norm = wr_pgf / kavg_pgf

    if ex_score >= kavg:
        bpi = 100 * math.log(your_norm) ** pow_coef / math.log(wr_norm) ** pow_coef
    else:
        bpi = -100 * (-math.log(your_norm)) ** pow_coef / math.log(wr_norm) ** pow_coef

    return round(max(bpi, -15.0), 2)


# lamp -> tierlist key whose value this lamp earns
IIDX_LAMP_TIERLISTS = (
    ("EX HARD CLEAR", "kt-EXHC"),
    ("HARD CLEAR", "kt-HC"),
    ("CLEAR", "kt-NC"),
)


def calculate_kt_lamp_rating(
    lamp_index: int,
    lamps: tuple[str, ...],
    chart: Mapping[str, Any],
) -> float:
    """\
    The highest tierlist value this lamp qualifies for, falling back to the
    chart's level for a plain clear when the chart has no tierlist data.
    """
    tierlist = chart.get("tierlistInfo") or {}
    best = 0.0

    for lamp, key in IIDX_LAMP_TIERLISTS:
        if lamp_index >= lamps.index(lamp) and key in tierlist:
            best = max(best, float(tierlist[key]["value"]))

    if best == 0.0 and lamp_index >= lamps.index("CLEAR"):
        best = float(chart.get("levelNum") or 0)

    return best


# sdvx / usc

VF6_GRADE_COEFFICIENTS = {
    "S": 1.05,
    "AAA+": 1.02,
    "AAA": 1.0,
    "AA+": 0.97,
    "AA": 0.94,
    "A+": 0.91,
    "A": 0.88,
    "B": 0.85,
    "C": 0.82,
    "D": 0.8,
}

VF6_LAMP_COEFFICIENTS = {
    "PERFECT ULTIMATE CHAIN": 1.1,
    "ULTIMATE CHAIN": 1.05,
    "EXCESSIVE CLEAR": 1.02,
    "CLEAR": 1.0,
    "FAILED": 0.5,
}


def calculate_vf6(score: int, grade: str, lamp: str, level_num: float) -> float:
    raw = level_num * (score / 10_000_000) * VF6_GRADE_COEFFICIENTS[grade] * VF6_LAMP_COEFFICIENTS[lamp]
    return math.floor(raw * 20) / 1000


# chunithm


def calculate_chunithm_rating(score: int, level_num: float) -> float:
    if score >= 1_007_500:
        rating = level_num + 2
    elif score >= 1_005_000:
        rating = level_num + 1.5 + (score - 1_005_000) / 5_000
    elif score >= 1_000_000:
        rating = level_num + 1 + (score - 1_000_000) / 10_000
    elif score >= 975_000:
        rating = level_num + (score - 975_000) / 25_000
    elif score >= 925_000:
        rating = level_num - 3 + (score - 925_000) * 3 / 50_000
    elif score >= 900_000:
        rating = level_num - 5 + (score - 900_000) * 2 / 25_000
    elif score >= 800_000:
        rating = (level_num - 5) / 2 + (score - 800_000) * ((level_num - 5) / 2) / 100_000
    elif score >= 500_000:
        rating = (score - 500_000) * ((level_num - 5) / 2) / 300_000
    else:
        rating = 0.0

    return math.floor(max(rating, 0.0) * 100) / 100


# gitadora


def calculate_gitadora_skill(percent: float, level_num: float) -> float:
    return math.floor(level_num * (percent / 100) * 20 * 100) / 100


# ddr

DDR_MFC_POINTS = (
    (19, 25.0),
    (18, 15.0),
    (17, 8.0),
    (16, 4.0),
    (15, 2.0),
    (10, 1.0),
)


def calculate_mfcp(lamp: str, level_num: float) -> float | None:
    if lamp != "MARVELOUS FULL COMBO":
        return None

    for minimum_level, points in DDR_MFC_POINTS:
        if level_num >= minimum_level:
            return points

    return None


def calculate_ddr_kt_rating(score: int, level_num: float, cleared: bool) -> float:
    if not cleared:
        return 0.0

    return round(level_num * (score / 1_000_000) ** 2, 2)


# bms

BMS_LAMP_TIERLISTS = (
    ("HARD CLEAR", "sgl-HC"),
    ("EASY CLEAR", "sgl-EC"),
)


def calculate_sieglinde(
    lamp_index: int,
    lamps: tuple[str, ...],
    chart: Mapping[str, Any],
) -> float:
    tierlist = chart.get("tierlistInfo") or {}
    best = 0.0

    for lamp, key in BMS_LAMP_TIERLISTS:
        if lamp_index >= lamps.index(lamp) and key in tierlist:
            best = max(best, float(tierlist[key]["value"]))

    return best
