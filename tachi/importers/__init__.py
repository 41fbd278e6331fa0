"""\
Converter registry.

Every import type maps to a converter that turns one raw record into a dry
score. Input parsers live beside their converters and are built by the
API layer from whatever the client sent.
"""

from __future__ import annotations

from typing import Any

from tachi.importers import batch_manual
from tachi.importers import kai_sdvx
from tachi.importers import sdvx_csv
from tachi.importers import usc
from tachi.importers.common import Converter
from tachi.importers.common import ConverterSuccess
from tachi.importers.common import InputParser
from tachi.importers.failures import ConverterFailure
from tachi.importers.failures import InternalFailure
from tachi.importers.failures import ScoreImportFatalError
from tachi.logging import ContextLogger

CONVERTERS: dict[str, Converter] = {
    "file/batch-manual": batch_manual.convert_batch_manual,
    "ir/direct-manual": batch_manual.convert_batch_manual,
    "ir/usc": usc.convert_usc_score,
    "file/eamusement-sdvx-csv": sdvx_csv.convert_sdvx_csv,
    "api/flo-sdvx": kai_sdvx.convert_kai_sdvx,
    "api/eag-sdvx": kai_sdvx.convert_kai_sdvx,
    "api/min-sdvx": kai_sdvx.convert_kai_sdvx,
}

# unknown charts from these import types wait in the orphan queue
ORPHANABLE_IMPORT_TYPES = frozenset({"ir/usc"})

FILE_IMPORT_TYPES = frozenset({"file/batch-manual", "file/eamusement-sdvx-csv"})

KAI_SERVICES = {
    "api/flo-sdvx": "FLO",
    "api/eag-sdvx": "EAG",
    "api/min-sdvx": "MIN",
}


def get_converter(import_type: str) -> Converter:
    try:
        return CONVERTERS[import_type]
    except KeyError:
        raise ScoreImportFatalError(400, f"Unknown import type {import_type}.")


async def run_converter(
    import_type: str,
    data: Any,
    context: dict[str, Any],
    logger: ContextLogger,
) -> ConverterSuccess | ConverterFailure:
    """Convert a single record, returning (not raising) any converter failure."""
    converter = get_converter(import_type)

    try:
        return await converter(data, context, import_type, logger)
    except ConverterFailure as failure:
        return failure
    except ScoreImportFatalError:
        raise
    except Exception as exc:
        logger.error(f"Converter for {import_type} raised unexpectedly: {exc!r}", exc_info=exc)
        return InternalFailure(f"An internal error occurred while converting this score. ({type(exc).__name__})")


def get_file_parser(import_type: str, file_data: bytes) -> InputParser:
    if import_type == "file/batch-manual":
        return batch_manual.create_file_parser(file_data)
    if import_type == "file/eamusement-sdvx-csv":
        return sdvx_csv.create_parser(file_data)

    raise ScoreImportFatalError(400, f"{import_type} is not a file import type.")


def get_api_parser(import_type: str, token: str) -> InputParser:
    try:
        service = KAI_SERVICES[import_type]
    except KeyError:
        raise ScoreImportFatalError(400, f"{import_type} is not an API import type.")

    return kai_sdvx.create_parser(service, token)  # type: ignore[arg-type]
