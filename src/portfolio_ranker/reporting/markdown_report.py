from __future__ import annotations

from datetime import date
from pathlib import Path

from portfolio_ranker.reporting.renderer import ReportEntry
from portfolio_ranker.reporting.tables import to_markdown_table


def build_report(entries: list[ReportEntry], as_of: date) -> str:
    lines = [
        f"# Portfolio Ranking ({as_of.isoformat()})",
        "",
        "Score is the sum of per-factor rank scores (each 0-100), highest first.",
        "",
        to_markdown_table(entries) if entries else "No candidates.",
        "",
    ]
    return "\n".join(lines)


def write_report(entries: list[ReportEntry], output_dir: str | Path, as_of: date) -> Path:
    out_dir = Path(output_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    report_path = out_dir / f"{as_of.strftime('%Y%m%d')}_ranking.md"
    report_path.write_text(build_report(entries, as_of), encoding="utf-8")
    return report_path
