#!/usr/bin/env python3.11
from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from collections.abc import Sequence
from typing import Any

sys.path.insert(0, os.path.abspath(os.pardir))
os.chdir(os.path.abspath(os.pardir))

try:
    import tachi.state.services
    from tachi.logging import Ansi
    from tachi.logging import configure_logging
    from tachi.logging import log
    from tachi.usecases.recalc import recalc_scores
except ModuleNotFoundError:
    print("\x1b[;91mMust run from tools/ directory\x1b[m")
    raise


def build_query(args: argparse.Namespace) -> dict[str, Any]:
    query: dict[str, Any] = {}

    if args.query:
        query.update(json.loads(args.query))
    if args.game:
        query["game"] = args.game
    if args.playtype:
        query["playtype"] = args.playtype
    if args.user:
        query["userID"] = {"$in": args.user}
    if args.chart:
        query["chartID"] = {"$in": args.chart}

    return query


async def main(argv: Sequence[str] | None = None) -> int:
    argv = argv if argv is not None else sys.argv[1:]

    parser = argparse.ArgumentParser(
        description="Recalculate calculated data for scores, then their PBs, rankings and profile stats",
    )

    parser.add_argument(
        "-d",
        "--debug",
        help="Enable verbose logging",
        action="store_true",
    )
    parser.add_argument("-g", "--game", help="Only recalculate scores for this game")
    parser.add_argument("-p", "--playtype", help="Only recalculate scores for this playtype")
    parser.add_argument(
        "-u",
        "--user",
        help="Only recalculate scores for these user IDs",
        nargs=argparse.ONE_OR_MORE,
        type=int,
    )
    parser.add_argument(
        "-c",
        "--chart",
        help="Only recalculate scores on these chart IDs",
        nargs=argparse.ONE_OR_MORE,
    )
    parser.add_argument(
        "-q",
        "--query",
        help='A raw JSON score query, e.g. \'{"scoreData.lamp": "FULL COMBO"}\'',
    )
    args = parser.parse_args(argv)

    configure_logging("verbose" if args.debug else None)

    try:
        query = build_query(args)
    except ValueError as exc:
        log(f"Invalid --query: {exc}", Ansi.LRED)
        return 1

    await tachi.state.services.connect()

    try:
        result = await recalc_scores(query)
    finally:
        await tachi.state.services.disconnect()

    log(
        f"Recalculated {result.scores} scores ({result.changed} changed) "
        f"for {len(result.users)} users.",
        Ansi.LGREEN,
    )

    if result.missing_charts:
        log(f"{result.missing_charts} scores reference charts that no longer exist.", Ansi.LYELLOW)

    return 0


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))
