"""Seed loader: reads polling-unit metadata for the dashboard page.

The file is re-read on every page load so edits show up without a restart.
"""

from pathlib import Path

from pydantic import ValidationError

from election_relay.schemas.polling_unit import PollingUnit, SeedFile


class SeedError(Exception):
    """The seed file is missing or does not match the expected shape."""


def load_polling_units(path: Path) -> list[PollingUnit]:
    try:
        raw = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise SeedError(f"cannot open seed file {path}: {e}") from e

    try:
        return SeedFile.model_validate_json(raw).polling_units
    except ValidationError as e:
        raise SeedError(f"invalid seed file {path}: {e}") from e
