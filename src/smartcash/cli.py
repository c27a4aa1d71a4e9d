"""Command-line entry points for the SmartCash ledger.

All orchestration in this module is limited to argparse wiring, translating
command-line arguments into the command objects consumed by the business
layer, and printing read-side reports. Keeping the CLI thin lets tests or any
other front-end reuse the same parser configuration.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Callable, Dict, Iterable, Mapping, MutableMapping, Optional, Sequence

from . import aggregation, core_logic, log
from .constants import BREAKDOWN_FIELDS, PayerType, PaymentMethod
from .errors import BusinessRuleViolation
from .records import PaymentBreakdown
from .repayments import RepaymentCommand
from .shifts import CloseShiftCommand


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed."""

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction[argparse.ArgumentParser]], argparse.ArgumentParser]
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int]
    mutates: bool = True


def parse_date(raw: str) -> date:
    """argparse type for ``YYYY-MM-DD`` values."""
    try:
        return date.fromisoformat(raw)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Invalid date (expected YYYY-MM-DD): {raw}") from exc


def parse_money(raw: str) -> Decimal:
    """argparse type for monetary amounts."""
    try:
        amount = Decimal(raw)
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError(f"Invalid amount: {raw}") from exc
    if not amount.is_finite():
        raise argparse.ArgumentTypeError(f"Invalid amount: {raw}")
    return amount


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="smartcash-cli",
        description="Shift reconciliation tools for the SmartCash ledger workbook.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (defaults to ./config.ini).",
    )
    return parser


def configure_subcommands(
    parser: argparse.ArgumentParser,
) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    write_specs = register_write_commands(subparsers)
    read_specs = register_read_commands(subparsers)
    return build_command_table([*write_specs.values(), *read_specs.values()])


def register_write_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare mutating CLI commands such as shift closes and signed bills."""
    specs = {
        "add-attendant": register_add_attendant_command(subparsers),
        "remove-attendant": register_remove_attendant_command(subparsers),
        "add-customer": register_add_customer_command(subparsers),
        "close-shift": register_close_shift_command(subparsers),
        "close-day": register_close_day_command(subparsers),
        "sign-bill": register_sign_bill_command(subparsers),
        "finalize-bills": register_finalize_bills_command(subparsers),
        "pay-bill": register_pay_bill_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_read_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare read-only CLI commands such as reports."""
    specs = {
        "next-day": register_next_day_command(subparsers),
        "summary": register_summary_command(subparsers),
        "report": register_report_command(subparsers),
        "bills": register_bills_command(subparsers),
        "roster": register_roster_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_add_attendant_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-attendant``."""
    name = "add-attendant"
    help_text = "Register a new attendant on the roster."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--name", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_attendant)


def register_remove_attendant_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``remove-attendant``."""
    name = "remove-attendant"
    help_text = "Remove an attendant from the roster (shift history is kept)."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--attendant-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_remove_attendant)


def register_add_customer_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-customer``."""
    name = "add-customer"
    help_text = "Register a credit customer ahead of their first signed bill."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--name", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_customer)


def register_close_shift_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``close-shift``."""
    name = "close-shift"
    help_text = "Close a waiter's shift against declared sales."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--waiter", required=True)
        parser.add_argument("--date", type=parse_date, required=True)
        parser.add_argument("--total-sales", type=parse_money, required=True)
        for field_name in BREAKDOWN_FIELDS:
            parser.add_argument(f"--{field_name.replace('_', '-')}", type=parse_money, default=Decimal("0"))
        parser.add_argument("--overpayment-method", default=None)
        parser.add_argument("--remarks", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_close_shift)


def register_close_day_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``close-day``."""
    name = "close-day"
    help_text = "Close a day irreversibly."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--date", type=parse_date, required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_close_day)


def register_sign_bill_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``sign-bill``."""
    name = "sign-bill"
    help_text = "Itemize signed bill credit against a customer."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--date", type=parse_date, required=True)
        parser.add_argument("--customer", required=True)
        parser.add_argument("--amount", type=parse_money, required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_sign_bill)


def register_finalize_bills_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``finalize-bills``."""
    name = "finalize-bills"
    help_text = "Lock a day's signed bills once they match the shift target."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--date", type=parse_date, required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_finalize_bills)


def register_pay_bill_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``pay-bill``."""
    name = "pay-bill"
    help_text = "Record a debt repayment handed in by a waiter."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--date", type=parse_date, required=True)
        parser.add_argument(
            "--payer-type",
            choices=[member.value for member in PayerType],
            required=True,
        )
        parser.add_argument("--payer-name", required=True)
        parser.add_argument("--waiter", required=True, help="Waiter who handed in the money.")
        parser.add_argument("--amount", type=parse_money, required=True)
        parser.add_argument(
            "--method",
            choices=[member.value for member in PaymentMethod],
            default=PaymentMethod.CASH.value,
        )
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_pay_bill)


def register_next_day_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``next-day``."""
    name = "next-day"
    help_text = "Show the next day to work on, if earlier signed bills are finalized."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--date", type=parse_date, required=True, help="Current working date.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_next_day, mutates=False)


def register_summary_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``summary``."""
    name = "summary"
    help_text = "Display the closing summary of one day."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--date", type=parse_date, required=True)
        parser.add_argument("--expected", type=parse_money, default=None, help="Expected daily sales from the till.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_summary, mutates=False)


def register_report_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``report``."""
    name = "report"
    help_text = "Display consolidated totals over an inclusive date range."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--from", dest="start", type=parse_date, required=True)
        parser.add_argument("--to", dest="end", type=parse_date, required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_report, mutates=False)


def register_bills_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``bills``."""
    name = "bills"
    help_text = "Display the signed bill position of a day."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--date", type=parse_date, required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_bills, mutates=False)


def register_roster_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``roster``."""
    name = "roster"
    help_text = "Display attendants and their status for a day."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--date", type=parse_date, required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_roster, mutates=False)


def load_runtime_context(config_path: Optional[Path] = None) -> core_logic.RuntimeContext:
    """Resolve the runtime context for CLI operations."""
    target = Path(config_path) if config_path is not None else Path.cwd() / "config.ini"
    return core_logic.load_runtime_context(target)


def dispatch_command(
    context: core_logic.RuntimeContext,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Dispatch the parsed arguments to the configured executor."""
    if not hasattr(args, "command") or args.command is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")
    return spec.execute(context, args)


def build_command_table(
    specs: Iterable[CommandSpec],
) -> MutableMapping[str, CommandSpec]:
    """Build an index of command specifications keyed by command name."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        if spec.name in table:
            raise ValueError(f"Duplicate command name: {spec.name}")
        table[spec.name] = spec
    return table


def translate_close_shift(args: argparse.Namespace) -> CloseShiftCommand:
    """Translate CLI args into a close-shift command object."""
    return CloseShiftCommand(
        waiter_name=args.waiter,
        shift_date=args.date,
        declared_total=args.total_sales,
        breakdown=PaymentBreakdown(**{name: getattr(args, name) for name in BREAKDOWN_FIELDS}),
        overpayment_method=args.overpayment_method,
        remarks=args.remarks,
    )


def translate_pay_bill(args: argparse.Namespace) -> RepaymentCommand:
    """Translate CLI args into a repayment command object."""
    return RepaymentCommand(
        entry_date=args.date,
        payer_type=PayerType(args.payer_type),
        payer_name=args.payer_name,
        received_from_waiter=args.waiter,
        amount=args.amount,
        method=PaymentMethod(args.method),
    )


def format_money(amount: Decimal, currency: str) -> str:
    """Render an amount with thousands separators, e.g. ``65,000 TZS``."""
    text = f"{amount:,.0f}" if amount == amount.to_integral_value() else f"{amount:,.2f}"
    return f"{text} {currency}"


def run_add_attendant(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    attendant = core_logic.register_attendant(context, args.name)
    print(f"Registered {attendant.name} ({attendant.attendant_id})")
    return 0


def run_remove_attendant(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    attendant = core_logic.remove_attendant(context, args.attendant_id)
    print(f"Removed {attendant.name}")
    return 0


def run_add_customer(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    customer = core_logic.register_customer(context, args.name)
    print(f"Registered customer {customer.name} ({customer.customer_id})")
    return 0


def run_close_shift(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the shift close workflow via the BLL."""
    record = core_logic.close_shift(context, translate_close_shift(args))
    currency = context.settings.currency
    print(f"Cash to hand over: {format_money(record.calculated_cash, currency)}")
    if record.overpayment_amount:
        print(f"Overpayment: {format_money(record.overpayment_amount, currency)}")
    return 0


def run_close_day(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the day-closing workflow via the BLL."""
    if core_logic.close_day(context, args.date):
        print(f"Closed {args.date.isoformat()}")
    else:
        print(f"{args.date.isoformat()} was already closed")
    status = core_logic.credit_status(context, args.date)
    if status.target:
        print(f"Signed bills to itemize: {format_money(status.target, context.settings.currency)}")
    return 0


def run_sign_bill(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the signed bill workflow via the BLL."""
    entry = core_logic.record_credit_line(context, args.date, args.customer, args.amount)
    status = core_logic.credit_status(context, args.date)
    currency = context.settings.currency
    print(f"{entry.customer_name}: {format_money(entry.amount, currency)}")
    print(f"Remaining to itemize: {format_money(status.remaining, currency)}")
    return 0


def run_finalize_bills(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the signed bill finalization workflow via the BLL."""
    if core_logic.finalize_credit_ledger(context, args.date):
        print(f"Signed bills for {args.date.isoformat()} finalized")
    else:
        print(f"Signed bills for {args.date.isoformat()} were already finalized")
    return 0


def run_pay_bill(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the repayment workflow via the BLL."""
    entry = core_logic.record_repayment(context, translate_pay_bill(args))
    print(f"Recorded {format_money(entry.amount, context.settings.currency)} from {entry.payer_name}")
    return 0


def run_next_day(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    following = core_logic.open_next_day(context, args.date)
    state = core_logic.day_state(context, following)
    print(f"{following.isoformat()} {state.value}")
    return 0


def _print_totals(totals: aggregation.Totals, currency: str) -> None:
    rows = [
        ("Sales", totals.sales),
        ("Cash", totals.cash),
        ("CRDB", totals.crdb),
        ("Stanbic", totals.stanbic),
        ("M-Pesa", totals.mpesa),
        ("Signed bills", totals.signed_bill),
        ("Discounts", totals.discount),
        ("Cancellations", totals.cancellation),
        ("Overpayments", totals.overpayment),
    ]
    for label, amount in rows:
        print(f"  {label:<14}{format_money(amount, currency):>20}")


def run_summary(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print the closing summary of one day."""
    summary = core_logic.summarize_day(context, args.date, expected_total=args.expected)
    currency = context.settings.currency
    state = core_logic.day_state(context, args.date)
    print(f"{context.settings.venue_name}: {args.date.isoformat()} ({state.value}, {summary.totals.shift_count} shifts)")
    _print_totals(summary.totals, currency)
    print(f"  {'Paid bills':<14}{format_money(summary.repayments.total, currency):>20}")
    print(f"  {'Cash on hand':<14}{format_money(summary.cash_on_hand, currency):>20}")
    if summary.outstanding is not None:
        print(f"  {'Outstanding':<14}{format_money(summary.outstanding, currency):>20}")
    return 0


def run_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print consolidated totals over a date range."""
    span = aggregation.DateRange(args.start, args.end)
    totals = core_logic.aggregate(context, span)
    recovered = core_logic.repayment_totals(context, span)
    print(
        f"{context.settings.venue_name}: {args.start.isoformat()} to {args.end.isoformat()} "
        f"({totals.shift_count} shifts)"
    )
    _print_totals(totals, context.settings.currency)
    print(f"  {'Paid bills':<14}{format_money(recovered.total, context.settings.currency):>20}")
    by_customer = core_logic.credit_by_customer(context, span)
    if by_customer:
        print("Signed bills by customer:")
        for customer_name, amount in sorted(by_customer.items(), key=lambda item: item[0].casefold()):
            print(f"  {customer_name:<24}{format_money(amount, context.settings.currency):>20}")
    return 0


def run_bills(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print the signed bill lines and state of a day."""
    status = core_logic.credit_status(context, args.date)
    currency = context.settings.currency
    print(f"{args.date.isoformat()} {status.state.value}")
    for entry in status.entries:
        print(f"  {entry.customer_name:<24}{format_money(entry.amount, currency):>20}")
    print(f"  {'Target':<24}{format_money(status.target, currency):>20}")
    print(f"  {'Remaining':<24}{format_money(status.remaining, currency):>20}")
    return 0


def run_roster(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print each attendant's status for a day."""
    summary = core_logic.roster_summary(context, args.date)
    currency = context.settings.currency
    for line in summary.lines:
        print(
            f"  {line.attendant.name:<24}{line.status.value:<10}"
            f"{format_money(line.declared_sales, currency):>20}  {line.attendant.attendant_id}"
        )
    print(f"Reconciled: {summary.reconciled}  Pending: {summary.pending}")
    waiting = core_logic.pending_attendants(context, args.date)
    if waiting:
        print("Without a closed shift: " + ", ".join(item.name for item in waiting))
    return 0


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    if isinstance(error, BusinessRuleViolation):
        log.error("%s", error)
        return 2
    if isinstance(error, FileNotFoundError):
        log.error("%s", error)
        return 3
    log.error("%s", error)
    return 1


def persist_workbook(context: core_logic.RuntimeContext) -> None:
    """Persist workbook changes after successful execution."""
    try:
        core_logic.persist_context(context)
    except PermissionError as error:
        raise RuntimeError(str(error)) from error


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    try:
        context = load_runtime_context(getattr(args, "config", None))
        core_logic.ensure_schema_version(context)
        exit_code = dispatch_command(context, args, command_table)
        if exit_code == 0 and command_table[args.command].mutates:
            persist_workbook(context)
        return exit_code
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)
