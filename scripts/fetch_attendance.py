"""Fetch subject-wise attendance from a university ERP as JSON or a table.

Standalone CLI around AttendanceEngine. Tries the known ERP endpoints first,
then the generic login-form / crawl / model path (needs GEMINI_API_KEY).

Run with: python scripts/fetch_attendance.py --url https://erp.example.edu --username 1XX22CS001
Table:    python scripts/fetch_attendance.py --url ... --username ... --table
Custom:   python scripts/fetch_attendance.py --url ... --username ... --threshold 80
JSON log: python scripts/fetch_attendance.py --url ... --username ... --json-logs

The password is read from ERP_PASSWORD, or prompted for when unset.

Exit codes:
  0 = success (JSON payload or table on stdout)
  1 = error (message on stderr)
"""

import argparse
import asyncio
import getpass
import json
import os
import sys

from dotenv import load_dotenv

load_dotenv()

# Add project root to path for src imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from src.unitrack.calculator import (  # noqa: E402
    classes_needed_to_attend,
    classes_to_bunk,
    summarize,
)
from src.unitrack.config import get_config  # noqa: E402
from src.unitrack.engine import AttendanceEngine  # noqa: E402
from src.unitrack.logging import setup_logging  # noqa: E402
from src.unitrack.models import AttendanceResult  # noqa: E402


def _log(msg: str) -> None:
    """Write diagnostic messages to stderr so stdout stays clean for JSON."""
    print(msg, file=sys.stderr)


def _parse_args() -> argparse.Namespace:
    """Parse CLI arguments using argparse."""
    parser = argparse.ArgumentParser(
        description="Fetch subject-wise attendance from a university ERP.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--url",
        type=str,
        default=os.getenv("ERP_URL", ""),
        help="Any URL on the ERP portal (default: $ERP_URL).",
    )
    parser.add_argument(
        "--username",
        type=str,
        default=os.getenv("ERP_USERNAME", ""),
        help="ERP username or roll number (default: $ERP_USERNAME).",
    )
    parser.add_argument(
        "--threshold",
        type=float,
        default=None,
        help="Minimum attendance percentage (default: DEFAULT_THRESHOLD or 75).",
    )
    parser.add_argument(
        "--table",
        action="store_true",
        help="Output a human-readable table instead of JSON.",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit logs as JSON lines on stderr.",
    )
    return parser.parse_args()


def _format_table(result: AttendanceResult) -> str:
    """Format subjects as a plain-text table followed by an overall summary."""
    headers = ["Code", "Subject", "Attended", "Total", "%", "Status", "Bunk", "Need"]
    rows: list[list[str]] = []
    for s in result.subjects:
        bunk = classes_to_bunk(s.attended, s.total, result.threshold)
        need = classes_needed_to_attend(s.attended, s.total, result.threshold)
        rows.append(
            [
                s.code,
                s.name,
                str(s.attended),
                str(s.total),
                f"{s.percentage:.2f}",
                s.status.value,
                str(bunk) if s.status.value == "safe" else "-",
                str(need) if s.status.value == "low" else "-",
            ]
        )

    widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(cell))

    header_line = " | ".join(h.ljust(widths[i]) for i, h in enumerate(headers))
    separator = "-+-".join("-" * w for w in widths)
    row_lines = [" | ".join(cell.ljust(widths[i]) for i, cell in enumerate(row)) for row in rows]

    summary = summarize(result.subjects, result.threshold)
    student = f"{result.student.name} ({result.student.usn})" if result.student.usn else result.student.name
    footer = (
        f"{student}: overall {summary.overall_percentage}% "
        f"({summary.total_attended}/{summary.total_classes}), threshold {result.threshold:g}% | "
        f"safe {summary.safe}, critical {summary.critical}, low {summary.low}"
    )
    return "\n".join([header_line, separator, *row_lines, "", footer])


async def main(args: argparse.Namespace) -> int:
    config = get_config()
    setup_logging(json_output=args.json_logs or config.log_json, log_level=config.log_level)

    password = os.getenv("ERP_PASSWORD") or getpass.getpass("ERP password: ")

    _log(f"fetch_attendance: starting ({args.url})")
    engine = AttendanceEngine(config)
    response = await engine.scrape(args.url, args.username, password, args.threshold)

    if not response.success or response.data is None:
        _log(f"ERROR: {response.error}")
        return 1

    if args.table:
        print(_format_table(response.data))
    else:
        print(json.dumps(response.to_payload(), indent=2, ensure_ascii=False))

    _log(f"fetch_attendance: done ({len(response.data.subjects)} subjects)")
    return 0


if __name__ == "__main__":
    args = _parse_args()
    try:
        sys.exit(asyncio.run(main(args)))
    except KeyboardInterrupt:
        sys.exit(1)
