#!/usr/bin/env python3
"""
Monthly Cost Report

Reports per-month Azure spending for one subscription over a year or a year
range. Requires the Owner role on the subscription.

Usage:
    # Current year, choose the subscription interactively
    python3 monthly_cost.py

    # Year range, newest month first, for a specific subscription
    python3 monthly_cost.py --years 2023:2025 --sort desc --subscription-id xxx

    # Show currency, copy the table to the clipboard, save JSON/CSV
    python3 monthly_cost.py --years 2024 --show-currency --export --output ./reports
"""
import argparse
import logging
import sys
from datetime import datetime, timezone
from typing import List, Optional

from azure.core.exceptions import AzureError

from costlib.aggregate import AggregationDriver
from costlib.authorization import AuthorizationResolver, ReauthLatch, RoleAssignmentLookup
from costlib.config import generate_sample_config, load_config
from costlib.constants import SORT_ASC, SORT_CHOICES, SORT_DESC
from costlib.errors import ConfigError, CostReportError, SignInRequired, YearRangeError
from costlib.identity import SessionProvider
from costlib.periods import group_by_year, resolve_months
from costlib.query import RetryingQueryClient
from costlib.scopes import ScopeDirectory, ScopeSelector
from costlib.utils import (
    ProgressTracker,
    copy_to_clipboard,
    generate_run_id,
    get_timestamp,
    print_report_table,
    report_to_tsv,
    setup_logging,
    write_csv,
    write_json,
)

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INVALID_INPUT = 2
EXIT_INTERRUPTED = 130


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Monthly Cost Report - per-month Azure spending for one subscription',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Current year (default)
  python3 monthly_cost.py

  # Year range, newest first
  python3 monthly_cost.py --years 2023:2025 --sort desc

  # Specific subscription, with currency column and clipboard export
  python3 monthly_cost.py --subscription-id xxxxxxxx-xxxx-xxxx-xxxx-xxxxxxxxxxxx --show-currency --export
"""
    )

    parser.add_argument('--years', help='Year or year range: YYYY or YYYY:YYYY (default: current year)')
    parser.add_argument('--sort', choices=SORT_CHOICES, help='Month order (default: asc)')
    parser.add_argument('--subscription-id', help='Subscription to report on (default: choose interactively)')
    parser.add_argument('--tenant-id', help='Tenant to sign in to')
    parser.add_argument('--show-currency', action='store_true', help='Show the currency column')
    parser.add_argument('--export', action='store_true',
                        help='Copy the report to the clipboard as tab-delimited text')
    parser.add_argument('--force-reauth', action='store_true',
                        help='Sign in interactively even if a session is available')

    parser.add_argument('-o', '--output', help='Directory for JSON/CSV report files and the log file')
    parser.add_argument('--log-level', help='Logging level (default: INFO)')
    parser.add_argument('--config', help='YAML config file')
    parser.add_argument('--generate-config', action='store_true',
                        help='Print a sample config file and exit')
    return parser


def start_session(tenant_id: Optional[str], force_reauth: bool):
    """Session provider and active principal for the run."""
    sessions = SessionProvider(tenant_id=tenant_id)

    if tenant_id and not force_reauth:
        saved = [s for s in sessions.list_sessions() if s.tenant_id == tenant_id]
        if saved:
            sessions.set_active_session(next((s for s in saved if s.is_default), saved[0]))

    if force_reauth:
        sessions.sign_in_interactive()
        return sessions, sessions.get_active_principal()

    try:
        principal = sessions.get_active_principal()
    except SignInRequired as e:
        logger.info(f"{e}")
        sessions.sign_in_interactive()
        principal = sessions.get_active_principal()

    return sessions, principal


def write_report_files(report, output_dir: str) -> None:
    run_id = generate_run_id()
    output_base = output_dir.rstrip('/')
    file_ts = utc_now().strftime('%H%M%S')

    write_json({
        'run_id': run_id,
        'timestamp': get_timestamp(),
        **report.to_dict(),
    }, f"{output_base}/monthly_cost_{file_ts}.json")
    write_csv([row.to_dict() for row in report.rows], f"{output_base}/monthly_cost_{file_ts}.csv")


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.generate_config:
        print(generate_sample_config())
        return EXIT_OK

    try:
        load_config(args)
    except ConfigError as e:
        logger.error(str(e))
        return EXIT_INVALID_INPUT

    setup_logging(args.log_level or 'INFO', output_dir=args.output)

    now = utc_now()
    years = args.years or str(now.year)
    sort = args.sort or SORT_ASC
    if sort not in SORT_CHOICES:
        logger.error(f"Invalid sort order '{sort}'. Use one of: {', '.join(SORT_CHOICES)}")
        return EXIT_INVALID_INPUT

    # Validate the range before any network call
    try:
        plan = resolve_months(years, now)
    except YearRangeError as e:
        logger.error(str(e))
        return EXIT_INVALID_INPUT

    if plan.fully_future:
        print(f"\nThe requested range {years} is entirely in the future. Nothing to report.")
        return EXIT_OK
    if not plan.months:
        print(f"\nThe requested range {years} has no months up to now. Nothing to report.")
        return EXIT_OK

    try:
        sessions, principal = start_session(args.tenant_id, args.force_reauth)

        latch = ReauthLatch()
        authorizer = AuthorizationResolver(sessions, RoleAssignmentLookup(sessions), latch)
        selector = ScopeSelector(ScopeDirectory(sessions), authorizer)

        if args.subscription_id:
            scope = selector.resolve_direct(args.subscription_id, principal)
        else:
            scope = selector.resolve_interactive(principal)

        client = RetryingQueryClient(sessions.credential)
        with ProgressTracker(total_years=len(group_by_year(plan.months))) as tracker:
            driver = AggregationDriver(client, tracker=tracker)
            report = driver.run(scope, plan.months, descending=(sort == SORT_DESC), period_label=plan.label)
    except CostReportError as e:
        logger.error(str(e))
        return EXIT_FAILURE
    except AzureError as e:
        logger.error(f"Azure request failed: {e}")
        return EXIT_FAILURE
    except KeyboardInterrupt:
        print("\nCancelled.")
        return EXIT_INTERRUPTED

    if report.no_activity:
        print(f"\nNo cost recorded for {scope.display_name or scope.id} in {plan.label}.")
        return EXIT_OK

    print()
    print_report_table(report, show_currency=args.show_currency)

    if args.export:
        if copy_to_clipboard(report_to_tsv(report, show_currency=args.show_currency)):
            print("Report copied to clipboard.")
        else:
            logger.warning("No clipboard command available; export skipped")

    if args.output:
        write_report_files(report, args.output)

    return EXIT_OK


if __name__ == '__main__':
    sys.exit(main())
