"""
Utility functions for the monthly cost report.

Logging Level Standards:
------------------------
- ERROR: Failures that stop the run
         "Cost query failed: HTTP 403: ..."
- WARNING: Retries, skipped subscriptions, re-authentication
           "Skipping subscription Dev (...): Role check failed ..."
- INFO: Progress messages
        "Querying costs 2024-01-01 to 2024-12-31"
- DEBUG: Per-attempt detail
         "Cost query attempt failed: HTTP 503: ..."
"""
import csv
import hashlib
import json
import logging
import os
import re
import subprocess
import sys
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional

from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from .constants import CLIPBOARD_COMMANDS
from .models import CostReport

logger = logging.getLogger(__name__)


# =============================================================================
# Progress Tracking
# =============================================================================

class ProgressTracker:
    """
    Progress over the yearly cost queries.

    Uses a rich progress bar when stdout is a TTY, plain prints otherwise.

    Usage:
        with ProgressTracker(total_years=3) as tracker:
            for year in years:
                tracker.start_year(year)
                ...
                tracker.complete_year()
    """

    def __init__(self, total_years: int, show_progress: bool = True):
        self.total_years = total_years
        self.show_progress = show_progress and sys.stdout.isatty()
        self.completed_years = 0
        self.current_year: Optional[int] = None

        self._progress: Optional[Progress] = None
        self._task = None

    def __enter__(self):
        if self.show_progress:
            self._progress = Progress(
                SpinnerColumn(),
                TextColumn("[bold blue]{task.description}"),
                BarColumn(),
                MofNCompleteColumn(),
                TimeElapsedColumn(),
                console=Console(),
                transient=True,
            )
            self._task = self._progress.add_task("Querying costs", total=self.total_years or 1)
            self._progress.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._progress is not None:
            self._progress.stop()
        return False

    def start_year(self, year: int):
        """Mark the start of a year's query."""
        self.current_year = year
        if self._progress is not None:
            self._progress.update(self._task, description=f"Querying costs for {year}")
        else:
            print(f"  [{year}] Querying costs...")

    def complete_year(self):
        """Mark the current year's query as complete."""
        self.completed_years += 1
        if self._progress is not None:
            self._progress.update(self._task, advance=1)
        else:
            print(f"  [{self.current_year}] Complete ({self.completed_years}/{self.total_years})")


def generate_run_id() -> str:
    """Generate a unique run ID."""
    return f"{datetime.now(timezone.utc).strftime('%Y%m%d-%H%M%S')}-{str(uuid.uuid4())[:8]}"


def get_timestamp() -> str:
    """Get current UTC timestamp in ISO format."""
    return datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z')


# =============================================================================
# Log Redaction
# =============================================================================

def hash_sensitive_id(value: str, prefix: str = "") -> str:
    """
    Hash a sensitive ID using consistent hashing.

    Example: 12345678-1234-1234-1234-123456789012 -> id-5b2f0a1c
    """
    if not value:
        return value
    hash_val = hashlib.sha256(value.encode()).hexdigest()[:8]
    return f"{prefix}{hash_val}" if prefix else hash_val


_LOG_REDACT_PATTERNS = [
    # Subscription paths - must come before the bare GUID pattern
    (re.compile(r'(/subscriptions/)([0-9a-f-]{36})', re.IGNORECASE),
     lambda m: f"{m.group(1)}{hash_sensitive_id(m.group(2).lower())}"),
    # GUIDs (subscription, tenant and object ids)
    (re.compile(r'\b([0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12})\b', re.IGNORECASE),
     lambda m: f"id-{hash_sensitive_id(m.group(1).lower())}"),
]


def redact_log_message(message: str) -> str:
    """Redact subscription, tenant and object ids from a log message."""
    if not message:
        return message

    for pattern, replacer in _LOG_REDACT_PATTERNS:
        message = pattern.sub(replacer, message)

    return message


class RedactingFilter(logging.Filter):
    """
    Logging filter that redacts sensitive ids from log messages.

    Uses consistent hashing so the same ID produces the same hash.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if record.msg:
            record.msg = redact_log_message(str(record.msg))
        if record.args:
            record.args = tuple(
                redact_log_message(arg) if isinstance(arg, str) else arg
                for arg in record.args
            )
        return True


CONSOLE_LOG_FORMAT = '%(levelname)s: %(message)s'
FILE_LOG_FORMAT = '%(asctime)s %(levelname)-7s %(name)s: %(message)s'

# Azure SDK loggers echo every HTTP request at INFO
SDK_LOGGERS = ('azure', 'msal', 'urllib3')


def setup_logging(level: str = "INFO", output_dir: Optional[str] = None) -> Optional[str]:
    """
    Route report logs to stderr and, with output_dir, to a redacted log file.

    stdout is left to the report table. Calling this again replaces the
    handlers of the previous call.

    Returns:
        Path of the log file, or None when logging to the console only
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(logging.Formatter(CONSOLE_LOG_FORMAT))
    handlers: List[logging.Handler] = [console]

    log_file = None
    if output_dir:
        os.makedirs(output_dir, exist_ok=True)
        stamp = datetime.now(timezone.utc).strftime('%Y%m%d_%H%M%S')
        log_file = os.path.join(output_dir, f"monthly_cost_{stamp}.log")
        to_file = logging.FileHandler(log_file, mode='w')
        to_file.setFormatter(logging.Formatter(FILE_LOG_FORMAT))
        to_file.addFilter(RedactingFilter())
        handlers.append(to_file)

    root = logging.getLogger()
    for old in list(root.handlers):
        root.removeHandler(old)
        old.close()
    root.setLevel(numeric_level)
    for handler in handlers:
        handler.setLevel(numeric_level)
        root.addHandler(handler)

    sdk_level = logging.DEBUG if numeric_level <= logging.DEBUG else logging.WARNING
    for name in SDK_LOGGERS:
        logging.getLogger(name).setLevel(sdk_level)

    if log_file:
        logging.getLogger(__name__).info(f"Logging to: {log_file}")
    return log_file


# =============================================================================
# Output
# =============================================================================

def write_json(data, filepath: str) -> None:
    """Write data to JSON file with secure permissions."""
    # Owner read/write only
    fd = os.open(filepath, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    try:
        with os.fdopen(fd, 'w') as f:
            json.dump(data, f, indent=2, default=str)
    except Exception:
        os.close(fd)
        raise
    print(f"Wrote {filepath}")


def write_csv(data: List[Dict], filepath: str, fieldnames: Optional[List[str]] = None) -> None:
    """Write data to CSV file."""
    if not data:
        return

    if not fieldnames:
        fieldnames = list(data[0].keys())

    with open(filepath, 'w', newline='') as f:
        writer = csv.DictWriter(f, fieldnames=fieldnames)
        writer.writeheader()
        writer.writerows(data)
    print(f"Wrote {filepath}")


def format_cost(cost) -> str:
    return f"{cost:,.2f}"


def print_report_table(report: CostReport, show_currency: bool = False, console: Optional[Console] = None) -> None:
    """Print the monthly rows as a table with a total line."""
    console = console or Console()

    title = "Monthly Cost"
    if report.scope:
        title = f"Monthly Cost - {report.scope.display_name or report.scope.id}"

    table = Table(title=title, caption=report.period_label or None)
    table.add_column("Month", style="cyan")
    table.add_column("Cost", justify="right", style="green")
    if show_currency:
        table.add_column("Currency")

    for row in report.rows:
        cells = [row.month, format_cost(row.cost)]
        if show_currency:
            cells.append(row.currency)
        table.add_row(*cells)

    total_cells = ["TOTAL", format_cost(report.total_cost)]
    if show_currency:
        total_cells.append(",".join(sorted({c for r in report.rows for c in r.currency.split(",") if c})))
    table.add_section()
    table.add_row(*total_cells, style="bold")

    console.print(table)


def report_to_tsv(report: CostReport, show_currency: bool = False) -> str:
    """Tab-delimited rows with a header line, for pasting into spreadsheets."""
    header = ["Month", "Cost"] + (["Currency"] if show_currency else [])
    lines = ["\t".join(header)]
    for row in report.rows:
        cells = [row.month, str(row.cost)]
        if show_currency:
            cells.append(row.currency)
        lines.append("\t".join(cells))
    return "\n".join(lines) + "\n"


def copy_to_clipboard(text: str) -> bool:
    """
    Copy text using the first platform clipboard command that works.

    Returns:
        True if a clipboard command accepted the text
    """
    for cmd in CLIPBOARD_COMMANDS:
        try:
            subprocess.run(cmd, input=text.encode('utf-8'), check=True, capture_output=True)
            logger.debug(f"Copied {len(text)} characters with {cmd[0]}")
            return True
        except FileNotFoundError:
            continue
        except subprocess.CalledProcessError as e:
            logger.debug(f"Clipboard command {cmd[0]} failed: {e}")
            continue
    return False
