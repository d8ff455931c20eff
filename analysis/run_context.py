"""Reusable run context for structured analysis output.

Every analysis phase uses RunContext to get:
  - Structured output directories: results/<dataset>/<analysis>/<date>/plots/ + data/
  - Automatic console log capture (run_log.txt)
  - Run metadata (run_info.json): git hash, timestamp, parameters
  - A `latest` symlink pointing to the most recent successful run
  - A convenience report symlink in the dataset root
    (e.g. 01_edge_effects_report.html → 01_edge_effects/latest/...)

Usage:
    with RunContext(
        dataset="edge-arthropods",
        analysis_name="01_edge_effects",
        params=vars(args),
        primer=EDGE_EFFECTS_PRIMER,   # Markdown primer written to <analysis>/README.md
    ) as ctx:
        summary.write_parquet(ctx.data_dir / "intervals.parquet")
        save_fig(fig, ctx.plots_dir / "plot.png")
"""

from __future__ import annotations

import io
import json
import re
import subprocess
import sys
from datetime import datetime
from pathlib import Path
from types import TracebackType
from typing import TextIO

from fieldedge.config import _VERSION, RESULTS_DIR

_DATASET_RE = re.compile(r"[^A-Za-z0-9._-]+")


class _TeeStream:
    """Wraps a stream to duplicate output to both the original stream and a buffer.

    All print() output goes to both the console (so the user sees progress)
    and an internal StringIO buffer (captured for run_log.txt).
    """

    def __init__(self, original: io.TextIOBase) -> None:
        self._original = original
        self._buffer = io.StringIO()

    def write(self, data: str) -> int:
        self._original.write(data)
        self._buffer.write(data)
        return len(data)

    def flush(self) -> None:
        self._original.flush()

    def getvalue(self) -> str:
        return self._buffer.getvalue()


def _normalize_dataset(dataset: str) -> str:
    """Make a dataset label safe for use as a directory name.

    Examples:
        "edge-arthropods"   -> "edge-arthropods"
        "Edge Arthropods 2" -> "edge_arthropods_2"
        "  pilot/2019 "     -> "pilot_2019"
    """
    cleaned = _DATASET_RE.sub("_", dataset.strip().lower()).strip("_")
    return cleaned or "default"


def _git_commit_hash() -> str:
    """Get the current git commit hash, or 'unknown' if not in a repo."""
    try:
        result = subprocess.run(
            ["git", "rev-parse", "HEAD"],
            capture_output=True,
            text=True,
            timeout=5,
        )
        if result.returncode == 0:
            return result.stdout.strip()
    except (FileNotFoundError, subprocess.TimeoutExpired):
        pass
    return "unknown"


def _format_elapsed(seconds: float) -> str:
    """Format elapsed seconds into a human-readable string.

    Examples: "3.2s", "1m 45s", "1h 12m 5s"
    """
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, secs = divmod(int(seconds), 60)
    if minutes < 60:
        return f"{minutes}m {secs}s"
    hours, mins = divmod(minutes, 60)
    return f"{hours}h {mins}m {secs}s"


def _next_run_label(analysis_dir: Path, today: str) -> str:
    """Return a unique run label for today, appending .1, .2, etc. if needed.

    First run of the day:  "261018"
    Second run:            "261018.1"

    Checks for existing directories (not symlinks) under *analysis_dir*.
    """
    if not (analysis_dir / today).exists() or (analysis_dir / today).is_symlink():
        return today

    n = 1
    while (analysis_dir / f"{today}.{n}").exists():
        n += 1
    return f"{today}.{n}"


def _replace_symlink(link: Path, target: Path | str) -> None:
    if link.is_symlink() or link.exists():
        link.unlink()
    link.symlink_to(target)


class RunContext:
    """Context manager that sets up structured output for an analysis run.

    Creates the directory tree, captures console output, and writes
    metadata on exit. A run that exits with an exception is recorded as
    failed and does not move the ``latest`` symlink.

    Attributes:
        dataset: Normalized dataset label.
        analysis_name: Name of the analysis phase (e.g. "01_edge_effects").
        params: Script parameters to record in run_info.json.
        run_dir: Root of this run's output (results/<dataset>/<analysis>/<date>/).
        plots_dir: Directory for PNG plots.
        data_dir: Directory for parquet/intermediate data files.
    """

    def __init__(
        self,
        dataset: str,
        analysis_name: str,
        params: dict | None = None,
        results_root: Path | None = None,
        primer: str | None = None,
    ) -> None:
        self.dataset = _normalize_dataset(dataset)
        self.analysis_name = analysis_name
        self.params = params or {}

        root = results_root or RESULTS_DIR
        today = datetime.now().strftime("%y%m%d")
        self._dataset_root = root / self.dataset
        self._analysis_dir = self._dataset_root / analysis_name
        self._run_label = _next_run_label(self._analysis_dir, today)
        self.run_dir = self._analysis_dir / self._run_label

        self.plots_dir = self.run_dir / "plots"
        self.data_dir = self.run_dir / "data"

        self._today = today
        self._primer = primer
        self._tee: _TeeStream | None = None
        self._original_stdout: TextIO | None = None
        self._start_time: datetime | None = None
        self.failed = False

        self.report = self._init_report()

    def __enter__(self) -> RunContext:
        self.setup()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_type is not None:
            print(f"\n{self.analysis_name.upper()} FAILED: {exc_type.__name__}: {exc_val}")
        self.finalize(failed=exc_type is not None)

    def _init_report(self) -> object:
        """Initialize a ReportBuilder, or None if the report module isn't available."""
        try:
            try:
                from analysis.report import ReportBuilder
            except ModuleNotFoundError:
                from report import ReportBuilder  # type: ignore[no-redef]
            return ReportBuilder(
                title=f"{self.analysis_name.upper()} Report",
                dataset=self.dataset,
            )
        except ImportError:
            return None

    def setup(self) -> None:
        """Create directories, write primer, and start log capture."""
        self.run_dir.mkdir(parents=True, exist_ok=True)
        self.plots_dir.mkdir(exist_ok=True)
        self.data_dir.mkdir(exist_ok=True)

        if self._primer:
            (self._analysis_dir / "README.md").write_text(self._primer, encoding="utf-8")

        self._original_stdout = sys.stdout
        self._tee = _TeeStream(sys.stdout)
        sys.stdout = self._tee  # type: ignore[assignment]
        self._start_time = datetime.now()

    def finalize(self, *, failed: bool = False) -> None:
        """Write run_info.json, run_log.txt, the HTML report, and update symlinks."""
        self.failed = failed

        # Restore stdout before writing metadata (so our writes aren't captured)
        log_text = ""
        if self._tee is not None:
            log_text = self._tee.getvalue()
        if self._original_stdout is not None:
            sys.stdout = self._original_stdout  # type: ignore[assignment]

        (self.run_dir / "run_log.txt").write_text(log_text, encoding="utf-8")

        end_time = datetime.now()
        elapsed_seconds = (end_time - self._start_time).total_seconds() if self._start_time else 0.0
        run_info = {
            "analysis": self.analysis_name,
            "dataset": self.dataset,
            "run_date": self._today,
            "run_label": self._run_label,
            "status": "failed" if failed else "ok",
            "timestamp_start": (self._start_time.isoformat() if self._start_time else None),
            "timestamp_end": end_time.isoformat(),
            "elapsed_seconds": round(elapsed_seconds, 1),
            "elapsed_display": _format_elapsed(elapsed_seconds),
            "git_commit": _git_commit_hash(),
            "fieldedge_version": _VERSION,
            "python_version": sys.version,
            "params": self.params,
        }
        with open(self.run_dir / "run_info.json", "w") as f:
            json.dump(run_info, f, indent=2, default=str)

        print(f"\n{self.analysis_name.upper()} completed in {run_info['elapsed_display']}")

        # Partial runs keep their logs but publish nothing downstream
        if failed:
            return

        if self.report is not None and getattr(self.report, "has_sections", False):
            self.report.git_hash = run_info["git_commit"]  # type: ignore[attr-defined]
            report_name = f"{self.analysis_name}_report.html"
            self.report.write(self.run_dir / report_name)  # type: ignore[attr-defined]
            _replace_symlink(
                self._dataset_root / report_name,
                Path(self.analysis_name) / "latest" / report_name,
            )

        _replace_symlink(self._analysis_dir / "latest", self._run_label)
