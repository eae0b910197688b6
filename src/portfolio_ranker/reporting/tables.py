from __future__ import annotations

from portfolio_ranker.reporting.renderer import ReportEntry

REPORT_COLUMNS: list[tuple[str, str]] = [
    ("ticker", "Ticker"),
    ("score", "Score"),
    ("pe_ratio", "P/E"),
    ("dividend_yield", "Dividend Yield"),
    ("pema_20", "Price/EMA(20)"),
    ("pema_200", "Price/EMA(200)"),
    ("long_term_change", "5Y Change"),
    ("short_term_change", "1M Change"),
]


def to_markdown_table(entries: list[ReportEntry]) -> str:
    header = "|" + "|".join(title for _, title in REPORT_COLUMNS) + "|\n"
    header += "|---|" + "".join("---:|" for _ in REPORT_COLUMNS[1:])
    rows = ["|" + "|".join(str(getattr(entry, attr)) for attr, _ in REPORT_COLUMNS) + "|" for entry in entries]
    return header + ("\n" + "\n".join(rows) if rows else "")
