"""Shared pytest fixtures for the SmartCash ledger test suite.

Store and integration tests get real workbooks under ``tmp_path``; runtime
tests get a mocked workbook; engine tests build ``LedgerState`` snapshots by
running shift closes through the engine itself.
"""

from __future__ import annotations

import argparse
import configparser
import sys
import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Callable, Iterator
from unittest.mock import Mock

import pytest

# Make ``src`` importable when the package is not installed.
SRC_DIR = Path(__file__).resolve().parents[1] / "src"

if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from smartcash import cli, constants, core_logic, data_manager  # noqa: E402
from smartcash.records import LedgerState, PaymentBreakdown  # noqa: E402
from smartcash.setup_excel import create_master_workbook  # noqa: E402
from smartcash.shifts import CloseShiftCommand, close_shift  # noqa: E402


@dataclass(frozen=True)
class ConfigBundle:
    """A config.ini and the ledger workbook it points at."""

    directory: Path
    config_path: Path
    workbook_path: Path
    schema_version: str
    venue_name: str


@pytest.fixture(scope="session", autouse=True)
def _restore_sys_path() -> Iterator[None]:
    saved = list(sys.path)
    yield
    sys.path[:] = saved


@pytest.fixture
def workbook_factory(tmp_path: Path) -> Callable[..., Path]:
    """Build empty ledger workbooks with every sheet and header in place."""

    def _build(*, subdir: str | None = None, filename: str = "smartcash_ledger.xlsx") -> Path:
        folder = tmp_path / subdir if subdir else tmp_path
        folder.mkdir(parents=True, exist_ok=True)
        return create_master_workbook(folder / filename, overwrite=True)

    return _build


@pytest.fixture
def master_workbook_path(workbook_factory: Callable[..., Path]) -> Path:
    return workbook_factory(subdir=f"ledger_{uuid.uuid4().hex[:8]}")


@pytest.fixture
def config_factory(tmp_path: Path, workbook_factory: Callable[..., Path]) -> Callable[..., ConfigBundle]:
    """Write a config.ini beside a fresh workbook and describe both.

    ``make_relative`` stores ``DataFile`` as a bare file name so the settings
    parser has to anchor it at the config directory.
    """

    def _build(
        *,
        make_relative: bool = False,
        venue_name: str = "Test Lounge",
        schema_version: str = constants.EXPECTED_SCHEMA_VERSION,
        credit_tolerance: str = "1",
    ) -> ConfigBundle:
        folder = f"venue_{uuid.uuid4().hex[:8]}"
        workbook_path = workbook_factory(subdir=folder)
        parser = configparser.ConfigParser()
        parser.optionxform = str
        parser["System"] = {
            "DataFile": workbook_path.name if make_relative else str(workbook_path),
            "VenueName": venue_name,
            "SchemaVersion": schema_version,
        }
        parser["Reconciliation"] = {"CreditTolerance": credit_tolerance, "Currency": "TZS"}
        config_path = workbook_path.parent / "config.ini"
        with config_path.open("w", encoding="utf-8") as handle:
            parser.write(handle)
        return ConfigBundle(
            directory=workbook_path.parent,
            config_path=config_path,
            workbook_path=workbook_path,
            schema_version=schema_version,
            venue_name=venue_name,
        )

    return _build


@pytest.fixture
def config_file(config_factory: Callable[..., ConfigBundle]) -> Path:
    return config_factory().config_path


@pytest.fixture
def runtime_context(config_file: Path) -> core_logic.RuntimeContext:
    """A context over a real, schema-checked workbook on disk."""

    context = core_logic.load_runtime_context(config_file)
    core_logic.ensure_schema_version(context)
    return context


# ---------------------------------------------------------------------------
# CLI layer fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_parser() -> argparse.ArgumentParser:
    return argparse.ArgumentParser(prog="smartcash-cli", description="SmartCash CLI")


@pytest.fixture
def subparsers_action(
    cli_parser: argparse.ArgumentParser,
) -> argparse._SubParsersAction[argparse.ArgumentParser]:
    return cli_parser.add_subparsers(dest="command")


@pytest.fixture
def command_spec_iterable() -> list[cli.CommandSpec]:
    """Three no-op command specs with distinct names."""

    return [
        cli.CommandSpec(name, f"{name} help", lambda action, name=name: action.add_parser(name), lambda *_: 0)
        for name in ("alpha", "beta", "gamma")
    ]


# ---------------------------------------------------------------------------
# Runtime layer fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path: Path) -> data_manager.ConfigSettings:
    return data_manager.ConfigSettings(
        data_file=tmp_path / "smartcash_ledger.xlsx",
        venue_name="Test Lounge",
        schema_version=constants.EXPECTED_SCHEMA_VERSION,
    )


@pytest.fixture
def workbook() -> Mock:
    return Mock(name="workbook")


@pytest.fixture
def context(settings: data_manager.ConfigSettings, workbook: Mock) -> core_logic.RuntimeContext:
    """A context whose workbook is a Mock; patch ``data_manager`` around it."""

    return core_logic.RuntimeContext(settings=settings, workbook=workbook)


# ---------------------------------------------------------------------------
# Engine fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def shift_command() -> Callable[..., CloseShiftCommand]:
    """Build a :class:`CloseShiftCommand` from plain numbers."""

    def _build(waiter: str, day: date, declared: int | str, **channels: int | str) -> CloseShiftCommand:
        breakdown = PaymentBreakdown(**{name: Decimal(str(value)) for name, value in channels.items()})
        return CloseShiftCommand(
            waiter_name=waiter,
            shift_date=day,
            declared_total=Decimal(str(declared)),
            breakdown=breakdown,
        )

    return _build


@pytest.fixture
def state_with_shifts(shift_command: Callable[..., CloseShiftCommand]) -> Callable[..., LedgerState]:
    """Run ``(waiter, day, declared, channels)`` shift closes through the engine."""

    def _build(*commands: tuple, state: LedgerState | None = None) -> LedgerState:
        current = state if state is not None else LedgerState()
        for waiter, day, declared, channels in commands:
            current, _ = close_shift(current, shift_command(waiter, day, declared, **channels))
        return current

    return _build
