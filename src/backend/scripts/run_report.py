from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional


def _ensure_backend_on_path() -> None:
    backend_dir = Path(__file__).resolve().parents[1]
    if str(backend_dir) not in sys.path:
        sys.path.insert(0, str(backend_dir))


def _format_amount(value: object) -> str:
    if value is None:
        return "n/a"
    return f"{value:,.2f}"


def _render_markdown(run) -> str:
    lines = [
        f"# {run.report_name} ({run.report_id})",
        "",
        f"Statement type: {run.statement_type}",
        f"Generated at: {run.generated_at.isoformat()}",
    ]
    if run.ltm is not None:
        lines.append(f"Period: {run.ltm.label}")
        lines.append(f"Data availability: {run.ltm.message}")
    lines.append("")

    columns = [run.ltm.label] if run.ltm is not None and run.years else [str(year) for year in run.years]
    header = ["Variable"] + columns
    lines.append("| " + " | ".join(header) + " |")
    lines.append("|" + "---|" * len(header))
    for name, values in run.values.items():
        cells = [name] + [_format_amount(values.get(year)) for year in run.years]
        lines.append("| " + " | ".join(cells) + " |")

    if run.variances:
        prior, current = run.years[-2], run.years[-1]
        lines.append("")
        lines.append(f"## Variance {prior} to {current}")
        for name, variance in run.variances.items():
            lines.append(f"- {name}: {_format_amount(variance.amount)} ({variance.percent:.1f}%)")
    return "\n".join(lines) + "\n"


def run_report(
    movements_path: Path,
    report_path: Path,
    *,
    ltm: bool = False,
    months_back: Optional[int] = None,
):
    _ensure_backend_on_path()
    from adapters.trial_balance.movements import available_years, load_movements_csv
    from common.report_engine.definitions import load_report_definition
    from common.report_engine.runner import ReportRunner

    definition = load_report_definition(report_path)
    frame = load_movements_csv(movements_path)
    return ReportRunner(definition).run(
        frame,
        ltm=ltm,
        months_back=months_back,
        available_years=available_years(frame),
    )


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Compute a report definition's variables over a trial-balance movements CSV."
    )
    parser.add_argument(
        "--movements",
        required=True,
        help="Path to a movements CSV (year, period, code1..3, name1..3, statement_type, account_code, movement_amount).",
    )
    parser.add_argument(
        "--report",
        required=True,
        help="Path to a report definition (.json, .yaml or .yml).",
    )
    parser.add_argument(
        "--ltm",
        action="store_true",
        help="Restrict the movements to the last-twelve-months window ending at the latest period.",
    )
    parser.add_argument(
        "--months-back",
        type=int,
        default=None,
        help="Window length in months for --ltm (defaults to the report's engine.default_months_back).",
    )
    parser.add_argument(
        "--format",
        choices=("json", "markdown"),
        default="json",
        help="Output format.",
    )
    parser.add_argument(
        "--out",
        default=None,
        help="Write output to this file instead of stdout.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level (defaults to REPORT_ENGINE_LOG_LEVEL or INFO).",
    )
    args = parser.parse_args(argv)

    if args.months_back is not None and args.months_back <= 0:
        parser.error("--months-back must be a positive integer")

    _ensure_backend_on_path()
    from adapters.trial_balance.movements import MovementsAdapterError
    from common.report_engine.errors import ReportEngineError
    from common.report_engine.logging_setup import configure_logging

    configure_logging(args.log_level)

    try:
        run = run_report(
            Path(args.movements).resolve(),
            Path(args.report).resolve(),
            ltm=args.ltm,
            months_back=args.months_back,
        )
    except (MovementsAdapterError, ReportEngineError, OSError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    if args.format == "markdown":
        output = _render_markdown(run)
    else:
        output = json.dumps(run.model_dump(mode="json"), indent=2) + "\n"

    if args.out:
        out_path = Path(args.out).resolve()
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(output)
        print(f"Wrote {out_path}")
    else:
        sys.stdout.write(output)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
