"""Human-readable reports: trial runs and environment listings."""

from pathlib import Path

from envsets.environment import RESERVED_VARIABLES
from envsets.errors import HarnessError
from harness import layout
from harness.skeleton import SeriesLayout


def collect_trial_output(series_dir: Path) -> dict[str, str]:
    """Map `out_<name>` to the content of that file for the single trial run.

    Reserved variable names are skipped; environment variables are not included.
    """
    series = SeriesLayout(series_dir)
    output: dict[str, str] = {}
    run_dirs = series.run_dirs()
    if not run_dirs:
        return output
    assert len(run_dirs) == 1, f"trial series holds {len(run_dirs)} runs"

    for file in sorted(run_dirs[0].iterdir()):
        if not file.is_file() or not file.name.startswith(layout.OUT_FILE_PREFIX):
            continue
        name = file.name[len(layout.OUT_FILE_PREFIX):]
        if not name or name in RESERVED_VARIABLES:
            continue
        output[file.name] = file.read_text(encoding="utf-8", errors="replace").strip()
    return output


def create_report(
    exp_name: str,
    error: HarnessError | None,
    stdout: str,
    stderr: str,
    out_files: dict[str, str],
    exomat_log: str,
) -> str:
    """Build the trial report.

    Layout::

        [Foo] exomat:
        [..] [INFO] ...
        ---
        [Foo] stdout:
        normal output
        ---
        [Foo] stderr:

        ---
        [Foo] out_bar:
        42

        ---
        [Foo] returned:
        Successful
    """
    parts = [
        f"[{exp_name}] exomat:\n{exomat_log}\n---\n",
        f"[{exp_name}] stdout:\n{stdout}\n---\n",
        f"[{exp_name}] stderr:\n{stderr}\n---\n",
    ]

    if not out_files:
        parts.append(f"[{exp_name}] created no output files\n")
    else:
        for out_file, content in out_files.items():
            parts.append(f"[{exp_name}] {out_file}:\n{content}\n\n")
    parts.append("---\n")

    parts.append(f"[{exp_name}] returned:\n")
    if error is None:
        parts.append("Successful\n")
    else:
        parts.append(f"Failed (reason: {error})\n")

    return "".join(parts)


def format_table(header: list[str], rows: list[list[str]]) -> str:
    """Render rows as an aligned plain-text table."""
    widths = [len(h) for h in header]
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(cell))

    def _line(cells: list[str]) -> str:
        return "│ " + " │ ".join(c.ljust(w) for c, w in zip(cells, widths)) + " │"

    border = "─" * (sum(widths) + 3 * len(widths) + 1)
    lines = [border, _line(header), border]
    lines.extend(_line(row) for row in rows)
    lines.append(border)
    return "\n".join(lines)
