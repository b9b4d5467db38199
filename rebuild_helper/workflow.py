"""Batch helpers for matching a roster against a KMZ without the web UI."""

from __future__ import annotations

import argparse
import csv
import logging
from pathlib import Path
from typing import Iterable, Optional, Sequence

from .config import APP_CONFIG, EXPORT_STRATEGIES, KML_LAYOUT
from .core import MatchResult, ProcessingError
from .pipelines import ReconciliationSession

__all__ = [
    "write_match_report",
    "run_report",
    "run_export",
]

LOGGER = logging.getLogger(__name__)

REPORT_COLUMNS: Sequence[str] = ("ROW", "STATUS", "REASON", "KEY", "KMZ_NAME", "LAT", "LNG")


def write_match_report(
    matches: Sequence[MatchResult],
    output_csv: Path,
    *,
    roster_fields: Sequence[str] = KML_LAYOUT.roster_fields,
) -> Path:
    """Write one line per roster row with its classification.

    Parameters
    ----------
    matches:
        Match results in roster order.
    output_csv:
        Destination of the report.
    roster_fields:
        Roster columns copied in front of the classification columns.

    Returns
    -------
    Path
        The filesystem path of the written report.
    """

    output_csv.parent.mkdir(parents=True, exist_ok=True)
    with output_csv.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.DictWriter(handle, fieldnames=[*roster_fields, *REPORT_COLUMNS])
        writer.writeheader()
        for result in matches:
            point = result.point
            record = {name: result.row.get(name) for name in roster_fields}
            record.update(
                ROW=result.row.index,
                STATUS=result.status.value,
                REASON=result.reason.value,
                KEY=result.row.key,
                KMZ_NAME=point.name if point else "",
                LAT=point.latitude if point else "",
                LNG=point.longitude if point else "",
            )
            writer.writerow(record)
    return output_csv


def _load_session(roster: Path, kmz: Path, *, encoding: Optional[str], strategy: Optional[str] = None) -> ReconciliationSession:
    session = ReconciliationSession.default(export_strategy=strategy)
    if encoding:
        session.ingestor.encoding = encoding
    status = session.load(roster, kmz)
    if not status.ok:
        raise status.error or ProcessingError(status.message)
    LOGGER.info("%s", status.message)
    return session


def run_report(
    roster: Path,
    kmz: Path,
    *,
    output_csv: Optional[Path] = None,
    encoding: Optional[str] = None,
) -> Path:
    """Auto-match ``roster`` against ``kmz`` and write a CSV report."""

    session = _load_session(roster, kmz, encoding=encoding)
    if output_csv is None:
        output_csv = roster.with_name(f"{roster.stem}_match_report.csv")
    return write_match_report(session.matches, output_csv)


def run_export(
    roster: Path,
    kmz: Path,
    *,
    output_kmz: Optional[Path] = None,
    strategy: Optional[str] = None,
    encoding: Optional[str] = None,
) -> Path:
    """Auto-match and write the updated KMZ without manual placement."""

    session = _load_session(roster, kmz, encoding=encoding, strategy=strategy)
    if output_kmz is None:
        output_kmz = kmz.with_name(APP_CONFIG.output_filename)
    status = session.export(output_kmz)
    if not status.ok:
        raise status.error or ProcessingError(status.message)
    return output_kmz


def _build_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Match an ABD Existing roster against an ABD KMZ by house number.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    report = subparsers.add_parser(
        "report",
        help="Write a CSV with the match status of every roster row.",
    )
    report.add_argument("roster", type=Path, help="Path to the ABD Existing CSV")
    report.add_argument("kmz", type=Path, help="Path to the ABD KMZ")
    report.add_argument(
        "--output",
        type=Path,
        help="Report path (defaults to '<roster>_match_report.csv')",
    )
    report.add_argument(
        "--encoding",
        help="Roster encoding, or 'auto' to detect it (default: utf-8-sig)",
    )

    export = subparsers.add_parser(
        "export",
        help="Auto-match and write the updated KMZ.",
    )
    export.add_argument("roster", type=Path, help="Path to the ABD Existing CSV")
    export.add_argument("kmz", type=Path, help="Path to the ABD KMZ")
    export.add_argument(
        "--output",
        type=Path,
        help=f"Output KMZ path (defaults to '{APP_CONFIG.output_filename}' next to the input)",
    )
    export.add_argument(
        "--strategy",
        choices=EXPORT_STRATEGIES,
        default=None,
        help=f"Export strategy (default: {APP_CONFIG.export_strategy})",
    )
    export.add_argument(
        "--encoding",
        help="Roster encoding, or 'auto' to detect it (default: utf-8-sig)",
    )

    return parser


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = _build_argument_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")

    try:
        if args.command == "report":
            path = run_report(args.roster, args.kmz, output_csv=args.output, encoding=args.encoding)
        elif args.command == "export":
            path = run_export(
                args.roster,
                args.kmz,
                output_kmz=args.output,
                strategy=args.strategy,
                encoding=args.encoding,
            )
        else:
            parser.error("Unknown command")
    except ProcessingError as exc:
        LOGGER.error("%s", exc)
        return 1

    LOGGER.info("Wrote %s", path)
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
