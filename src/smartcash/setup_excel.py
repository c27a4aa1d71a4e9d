"""Bootstrap an empty SmartCash ledger workbook.

Installed as the ``smartcash-setup`` console script. Tests call
:func:`create_master_workbook` directly to get a workbook with every sheet
and header row the data layer validates.
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Iterable, Mapping, Sequence
import sys

import openpyxl
from openpyxl.styles import Font
from openpyxl.workbook import Workbook

from . import data_manager, log
from .records import LedgerState
from .roster import register_attendant


def _add_header_sheets(workbook: Workbook, sheet_columns: Mapping[str, Sequence[str]]) -> None:
    header_font = Font(bold=True)
    for sheet_name, columns in sheet_columns.items():
        sheet = workbook.create_sheet(title=sheet_name)
        sheet.append(list(columns))
        for cell in sheet[1]:
            cell.font = header_font


def _seed_roster(workbook: Workbook, names: Iterable[str]) -> int:
    state = LedgerState()
    for name in names:
        if not name.strip():
            continue
        state, attendant = register_attendant(state, name)
        data_manager.append_attendant(workbook, attendant)
    return len(state.attendants)


def create_master_workbook(
    destination: Path,
    *,
    sheet_columns: Mapping[str, Sequence[str]] = data_manager.SHEET_COLUMNS,
    attendants: Iterable[str] = (),
    overwrite: bool = False,
) -> Path:
    """Write a new ledger workbook and return its resolved path.

    Args:
        destination (Path): Target ``.xlsx`` file; parent folders are created.
        sheet_columns (Mapping[str, Sequence[str]]): Header row per sheet.
        attendants (Iterable[str]): Names to put on the roster straight away.
            Blank names are skipped.
        overwrite (bool): Replace an existing file instead of refusing.

    Raises:
        FileExistsError: If ``destination`` exists and ``overwrite`` is false.
        DuplicateName: If ``attendants`` repeats a name.
    """

    target = Path(destination).expanduser().resolve()
    if target.exists() and not overwrite:
        raise FileExistsError(f"Ledger workbook already exists: {target}")

    workbook = openpyxl.Workbook()
    workbook.remove(workbook.active)
    _add_header_sheets(workbook, sheet_columns)
    seeded = _seed_roster(workbook, attendants)

    target.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(target)
    log.info("Created ledger workbook '%s' with %d attendant(s)", target, seeded)
    return target


def run_from_config(config_path: Path, *, overwrite: bool = False, attendants: Iterable[str] = ()) -> Path:
    """Create the workbook named by ``DataFile`` in ``config_path``."""

    parser = data_manager.read_config(config_path)
    settings = data_manager.parse_settings(parser, base_path=config_path.expanduser().resolve().parent)
    return create_master_workbook(settings.data_file, attendants=attendants, overwrite=overwrite)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="smartcash-setup",
        description="Create an empty SmartCash ledger workbook from config.ini.",
    )
    parser.add_argument("--config", default=data_manager.CONFIG_FILE_NAME, help="Configuration file to read.")
    parser.add_argument("--force", action="store_true", help="Replace an existing workbook.")
    parser.add_argument(
        "--attendant",
        dest="attendants",
        action="append",
        default=[],
        metavar="NAME",
        help="Put an attendant on the roster (repeatable).",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for ``smartcash-setup``; returns a process exit code."""

    args = parse_args(argv)
    config_path = Path(args.config).expanduser().resolve()
    print(f"SmartCash setup using {config_path}")

    try:
        output_path = run_from_config(config_path, overwrite=args.force, attendants=args.attendants)
    except FileExistsError as exc:
        print(f"[ERROR] {exc}")
        print("Pass --force to replace it.")
        return 1
    except (FileNotFoundError, KeyError, ValueError) as exc:
        print(f"[ERROR] {exc}")
        return 1
    except OSError as exc:
        print(f"[ERROR] Could not write the workbook: {exc}")
        return 1

    print(f"[SUCCESS] Ledger workbook ready at {output_path}")
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
