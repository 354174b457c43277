from __future__ import annotations

import argparse
import logging
import sys
from datetime import UTC, date, datetime
from pathlib import Path
from typing import Any

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from src.eval.metrics import program_metrics, selection_breakdown
from src.io.snapshotting import (
    build_and_write_snapshot,
    load_record_store,
    save_record_store,
    write_json_atomic,
)
from src.lifecycle.seeding import seed_records
from src.normalize.roster import load_roster, validate_roster
from src.rank.cohort_selection import decisions_to_frame, select, summarize_cohorts
from src.rank.policy import SelectionPolicy, load_policy

logger = logging.getLogger("run_import")

DEFAULT_POLICY_PATH = ROOT_DIR / "data" / "processed" / "selection_policy.json"


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Import a student roster and select scholarship holders.")
    parser.add_argument("--roster", type=Path, required=True, help="Roster file (.xlsx, .csv, .json, .parquet).")
    parser.add_argument("--period-id", type=str, required=True, help="Academic period identifier.")
    parser.add_argument("--processed-dir", type=Path, default=ROOT_DIR / "data" / "processed")
    parser.add_argument("--report-dir", type=Path, default=ROOT_DIR / "reports" / "import_runs")
    parser.add_argument("--policy", type=Path, default=DEFAULT_POLICY_PATH)
    parser.add_argument(
        "--date",
        type=str,
        default=None,
        help="Run date in YYYYMMDD format. Defaults to current UTC date.",
    )
    parser.add_argument("--workers", type=int, default=1, help="Threads used to rank cohorts.")
    return parser.parse_args()


def _resolve_repo_path(path: Path) -> Path:
    if path.is_absolute():
        return path
    return ROOT_DIR / path


def _coerce_run_date(run_date: str | None) -> date:
    if run_date is None:
        return datetime.now(tz=UTC).date()
    return datetime.strptime(run_date, "%Y%m%d").date()


def _exception_summary(exc: Exception) -> dict[str, str]:
    return {"type": type(exc).__name__, "message": str(exc)}


def _build_guardrail_warnings(
    *,
    total_rows: int,
    discarded_rows: int,
    cohorts_without_award: list[str],
) -> list[str]:
    warnings: list[str] = []
    if total_rows > 0:
        discarded_ratio = discarded_rows / total_rows
        if discarded_ratio > 0.05:
            warnings.append(
                f"More than 5% of roster rows were discarded "
                f"({discarded_rows}/{total_rows}, {discarded_ratio:.1%})."
            )
    if cohorts_without_award:
        warnings.append(
            f"{len(cohorts_without_award)} career(s) award nothing (no regular students): "
            + ", ".join(cohorts_without_award)
        )
    return warnings


def run_import(
    *,
    roster_path: Path,
    period_id: str,
    date: date | None = None,
    processed_dir: Path | None = None,
    report_dir: Path | None = None,
    policy: SelectionPolicy | None = None,
    workers: int = 1,
) -> dict[str, Any]:
    started_at = datetime.now(tz=UTC)
    effective_policy = policy or SelectionPolicy.baseline()
    resolved_processed_dir = _resolve_repo_path(processed_dir or (ROOT_DIR / "data" / "processed"))
    resolved_report_dir = _resolve_repo_path(report_dir or (ROOT_DIR / "reports" / "import_runs"))
    effective_run_date = date or started_at.date()
    report_path = resolved_report_dir / f"import_{started_at.strftime('%Y%m%dT%H%M%SZ')}.json"

    validation: dict[str, Any] = {}
    breakdown: dict[str, Any] = {}
    cohorts: list[dict[str, Any]] = []
    seed_summary: dict[str, Any] = {}
    metrics: dict[str, Any] = {}
    guardrail_warnings: list[str] = []
    snapshot_path: Path | None = None
    changes_path: Path | None = None
    records_path: Path | None = None
    delta: dict[str, Any] = {"added": [], "removed": [], "changed": []}
    run_exception: dict[str, str] | None = None
    selection_done = False

    try:
        roster_df = load_roster(roster_path)
        students, validation_report = validate_roster(roster_df, effective_policy)
        validation = validation_report.to_dict()

        decisions = select(students, effective_policy, max_workers=workers)
        selection_done = True
        breakdown = selection_breakdown(decisions)
        summaries = summarize_cohorts(decisions, effective_policy)
        cohorts = [
            {
                "career": summary.career,
                "faculty": summary.faculty,
                "total": summary.total_count,
                "regular": summary.regular_count,
                "cutoff_count": summary.cutoff_count,
                "cutoff_grade": summary.cutoff_grade,
                "selected": summary.selected_count,
                "tie_extension": summary.tie_extension,
            }
            for summary in summaries
        ]
        guardrail_warnings = _build_guardrail_warnings(
            total_rows=validation_report.total_rows,
            discarded_rows=validation_report.discarded_rows,
            cohorts_without_award=[s.career for s in summaries if s.cutoff_grade is None],
        )
        for warning in guardrail_warnings:
            logger.warning("Guardrail: %s", warning)

        store = load_record_store(resolved_processed_dir)
        seed_summary = seed_records(
            decisions, period_id=period_id, store=store, now=started_at
        ).to_dict()
        records_path = save_record_store(store, resolved_processed_dir)
        metrics = program_metrics(store.list(period_id=period_id), effective_policy)

        snapshot_path, changes_path, delta = build_and_write_snapshot(
            decisions_to_frame(decisions),
            period_id=period_id,
            processed_dir=resolved_processed_dir,
            run_date=effective_run_date,
        )
    except Exception as exc:
        run_exception = _exception_summary(exc)
        logger.exception("Import run failed for period %s.", period_id)
    finally:
        finished_at = datetime.now(tz=UTC)
        if run_exception is None:
            status = "success"
        elif selection_done:
            status = "partial"
        else:
            status = "failed"

        report_payload = {
            "status": status,
            "action": "UPLOAD_ROSTER",
            "period_id": period_id,
            "roster": str(roster_path),
            "run_started_at": started_at.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "run_finished_at": finished_at.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "duration_seconds": round((finished_at - started_at).total_seconds(), 3),
            "run_date": effective_run_date.isoformat(),
            "policy": effective_policy.to_dict(),
            "validation": validation,
            "selection": breakdown,
            "cohorts": cohorts,
            "seeding": seed_summary,
            "metrics": metrics,
            "guardrail_warnings": guardrail_warnings,
            "artifact_paths": {
                "snapshot": str(snapshot_path.resolve()) if snapshot_path else None,
                "delta": str(changes_path.resolve()) if changes_path else None,
                "records": str(records_path.resolve()) if records_path else None,
                "report": str(report_path.resolve()),
            },
            "delta_counts": {
                "added": len(delta["added"]),
                "removed": len(delta["removed"]),
                "changed": len(delta["changed"]),
            },
            "exception_summary": run_exception,
        }
        write_json_atomic(report_payload, report_path)
    return report_payload


def main() -> int:
    args = parse_args()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    report = run_import(
        roster_path=args.roster,
        period_id=args.period_id,
        date=_coerce_run_date(args.date),
        processed_dir=args.processed_dir,
        report_dir=args.report_dir,
        policy=load_policy(args.policy),
        workers=args.workers,
    )

    print(f"Run status: {report['status']}")
    print(
        "Roster rows: "
        f"total={report['validation'].get('total_rows', 0)}, "
        f"accepted={report['validation'].get('accepted_rows', 0)}, "
        f"discarded={report['validation'].get('discarded_rows', 0)}"
    )
    print(f"Selected: {report['selection'].get('selected', 0)} across {len(report['cohorts'])} careers")
    print(f"Wrote snapshot: {report['artifact_paths']['snapshot']}")
    print(f"Wrote import report: {report['artifact_paths']['report']}")
    return 0 if report["status"] != "failed" else 1


if __name__ == "__main__":
    raise SystemExit(main())
