"""Per-(game, playtype) configuration shared by converters and aggregation."""

from __future__ import annotations

from dataclasses import dataclass

IIDX_LAMPS = (
    "NO PLAY",
    "FAILED",
    "ASSIST CLEAR",
    "EASY CLEAR",
    "CLEAR",
    "HARD CLEAR",
    "EX HARD CLEAR",
    "FULL COMBO",
)

SDVX_LAMPS = (
    "FAILED",
    "CLEAR",
    "EXCESSIVE CLEAR",
    "ULTIMATE CHAIN",
    "PERFECT ULTIMATE CHAIN",
)

# (grade, minimum percent) in ascending order
IIDX_GRADES = (
    ("F", 0.0),
    ("E", 200 / 9),
    ("D", 300 / 9),
    ("C", 400 / 9),
    ("B", 500 / 9),
    ("A", 600 / 9),
    ("AA", 700 / 9),
    ("AAA", 800 / 9),
    ("MAX-", 850 / 9),
    ("MAX", 100.0),
)

SDVX_GRADES = (
    ("D", 0.0),
    ("C", 70.0),
    ("B", 80.0),
    ("A", 87.0),
    ("A+", 90.0),
    ("AA", 93.0),
    ("AA+", 95.0),
    ("AAA", 97.0),
    ("AAA+", 98.0),
    ("S", 99.0),
)


@dataclass(frozen=True)
class GamePTConfig:
    game: str
    playtype: str
    lamps: tuple[str, ...]
    grades: tuple[tuple[str, float], ...]
    difficulties: tuple[str, ...]

    # the score field charts are ranked on
    default_metric: str = "score"

    # calculatedData keys that are aggregated into profile ratings
    rating_algorithms: tuple[str, ...] = ()

    # class sets this game tracks
    class_sets: tuple[str, ...] = ()

    # lamp at or above which a chart counts as cleared
    clear_lamp: str | None = None

    # the maximum raw score, when it does not depend on the chart
    max_score: int | None = None

    def lamp_index(self, lamp: str) -> int:
        return self.lamps.index(lamp)

    def grade_index(self, grade: str) -> int:
        return [g for g, _ in self.grades].index(grade)

    @property
    def grade_names(self) -> list[str]:
        return [g for g, _ in self.grades]


GAME_PT_CONFIGS: dict[tuple[str, str], GamePTConfig] = {}


def _register(config: GamePTConfig) -> None:
    GAME_PT_CONFIGS[(config.game, config.playtype)] = config


for _pt in ("SP", "DP"):
    _register(
        GamePTConfig(
            game="iidx",
            playtype=_pt,
            lamps=IIDX_LAMPS,
            grades=IIDX_GRADES,
            difficulties=("BEGINNER", "NORMAL", "HYPER", "ANOTHER", "LEGGENDARIA"),
            rating_algorithms=("ktLampRating", "BPI"),
            class_sets=("dan",),
            clear_lamp="CLEAR",
        ),
    )

for _pt in ("7K", "14K"):
    _register(
        GamePTConfig(
            game="bms",
            playtype=_pt,
            lamps=IIDX_LAMPS,
            grades=IIDX_GRADES,
            difficulties=("CHART",),
            rating_algorithms=("sieglinde",),
            clear_lamp="EASY CLEAR",
        ),
    )

_register(
    GamePTConfig(
        game="sdvx",
        playtype="Single",
        lamps=SDVX_LAMPS,
        grades=SDVX_GRADES,
        difficulties=("NOV", "ADV", "EXH", "INF", "GRV", "HVN", "VVD", "XCD", "MXM"),
        rating_algorithms=("VF6",),
        class_sets=("dan", "vfClass"),
        clear_lamp="CLEAR",
        max_score=10_000_000,
    ),
)

for _pt in ("Controller", "Keyboard"):
    _register(
        GamePTConfig(
            game="usc",
            playtype=_pt,
            lamps=SDVX_LAMPS,
            grades=SDVX_GRADES,
            difficulties=("NOV", "ADV", "EXH", "INF"),
            rating_algorithms=("VF6",),
            clear_lamp="CLEAR",
            max_score=10_000_000,
        ),
    )

_register(
    GamePTConfig(
        game="chunithm",
        playtype="Single",
        lamps=("FAILED", "CLEAR", "FULL COMBO", "ALL JUSTICE", "ALL JUSTICE CRITICAL"),
        grades=(
            ("D", 0.0),
            ("C", 50.0),
            ("B", 60.0),
            ("BB", 70.0),
            ("BBB", 80.0),
            ("A", 90.0),
            ("AA", 92.5),
            ("AAA", 95.0),
            ("S", 97.5),
            ("SS", 99.0),
            ("SSS", 100.75),
        ),
        difficulties=("BASIC", "ADVANCED", "EXPERT", "MASTER", "WORLD'S END"),
        rating_algorithms=("rating",),
        class_sets=("colour",),
        clear_lamp="CLEAR",
        max_score=1_010_000,
    ),
)

for _pt in ("Gita", "Dora"):
    _register(
        GamePTConfig(
            game="gitadora",
            playtype=_pt,
            lamps=("FAILED", "CLEAR", "FULL COMBO", "EXCELLENT"),
            grades=(
                ("C", 0.0),
                ("B", 63.0),
                ("A", 73.0),
                ("S", 80.0),
                ("SS", 95.0),
                ("MAX", 100.0),
            ),
            difficulties=("BASIC", "ADVANCED", "EXTREME", "MASTER"),
            default_metric="percent",
            rating_algorithms=("skill",),
            class_sets=("colour",),
            clear_lamp="CLEAR",
        ),
    )

for _pt in ("SP", "DP"):
    _register(
        GamePTConfig(
            game="ddr",
            playtype=_pt,
            lamps=(
                "FAILED",
                "CLEAR",
                "LIFE4",
                "FULL COMBO",
                "GREAT FULL COMBO",
                "PERFECT FULL COMBO",
                "MARVELOUS FULL COMBO",
            ),
            grades=(
                ("D", 0.0),
                ("D+", 55.0),
                ("C-", 59.0),
                ("C", 60.0),
                ("C+", 65.0),
                ("B-", 69.0),
                ("B", 70.0),
                ("B+", 75.0),
                ("A-", 79.0),
                ("A", 80.0),
                ("A+", 85.0),
                ("AA-", 89.0),
                ("AA", 90.0),
                ("AA+", 95.0),
                ("AAA", 99.0),
            ),
            difficulties=("BEGINNER", "BASIC", "DIFFICULT", "EXPERT", "CHALLENGE"),
            rating_algorithms=("MFCP", "ktRating"),
            clear_lamp="CLEAR",
            max_score=1_000_000,
        ),
    )

GAMES = tuple(sorted({game for game, _ in GAME_PT_CONFIGS}))


def get_game_pt_config(game: str, playtype: str) -> GamePTConfig:
    try:
        return GAME_PT_CONFIGS[(game, playtype)]
    except KeyError:
        raise ValueError(f"Unsupported game/playtype {game}:{playtype}.")


def is_valid_game_pt(game: str, playtype: str) -> bool:
    return (game, playtype) in GAME_PT_CONFIGS


def get_playtypes(game: str) -> list[str]:
    return [pt for g, pt in GAME_PT_CONFIGS if g == game]
