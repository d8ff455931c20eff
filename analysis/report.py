"""Component-based HTML report for analysis output.

Produces one self-contained HTML file with journal-style tables, embedded
plots, and a table of contents. Each analysis phase adds its own sections.

Three section types:
  - TableSection: Pre-rendered HTML (from great_tables via make_gt()).
  - FigureSection: Base64-embedded PNG read from a file on disk.
  - TextSection: Raw HTML block.

ReportBuilder assembles the sections with a Jinja2 template.

Usage:
    from analysis.report import ReportBuilder, TableSection, FigureSection, make_gt

    report = ReportBuilder(title="Edge Effects", dataset="edge-arthropods")
    report.add(TableSection(id="curves", title="Curve Summary", html=make_gt(df)))
    report.add(FigureSection.from_file("richness", "Richness", path))
    report.write(Path("report.html"))
"""

from __future__ import annotations

import base64
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from jinja2 import Environment

# ── Section Types ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TableSection:
    """A table section containing pre-rendered HTML (typically from great_tables)."""

    id: str
    title: str
    html: str
    caption: str | None = None

    def render(self) -> str:
        return _wrap("table-container", self.id, self.html, self.caption)


@dataclass(frozen=True)
class FigureSection:
    """A figure section with a base64-embedded PNG image."""

    id: str
    title: str
    image_data: str  # base64-encoded PNG
    caption: str | None = None

    @classmethod
    def from_file(
        cls,
        id: str,
        title: str,
        path: Path,
        caption: str | None = None,
    ) -> FigureSection:
        """Create a FigureSection from a PNG file on disk."""
        b64 = base64.b64encode(path.read_bytes()).decode("ascii")
        return cls(id=id, title=title, image_data=b64, caption=caption)

    def render(self) -> str:
        img = f'<img src="data:image/png;base64,{self.image_data}" alt="{self.title}" />'
        return _wrap("figure-container", self.id, img, self.caption)


@dataclass(frozen=True)
class TextSection:
    """A raw HTML text block."""

    id: str
    title: str
    html: str
    caption: str | None = None

    def render(self) -> str:
        return _wrap("text-container", self.id, self.html, self.caption)


SectionType = TableSection | FigureSection | TextSection


def _wrap(css_class: str, id: str, body: str, caption: str | None) -> str:
    parts = [f'<div class="{css_class}" id="{id}">', body]
    if caption:
        parts.append(f'<p class="caption">{caption}</p>')
    parts.append("</div>")
    return "\n".join(parts)


# ── make_gt Helper ────────────────────────────────────────────────────────────


def make_gt(
    df: object,
    title: str | None = None,
    subtitle: str | None = None,
    column_labels: dict[str, str] | None = None,
    number_formats: dict[str, str] | None = None,
    source_note: str | None = None,
) -> str:
    """Build a great_tables GT table with journal styling and return its HTML.

    Args:
        df: A polars DataFrame to display.
        title: Table title (bold, above table).
        subtitle: Subtitle (below title, smaller).
        column_labels: Mapping of column name -> display label.
        number_formats: Mapping of column name -> Python format spec (e.g. ".2f").
        source_note: Footnote text below the table.

    Returns:
        HTML string with inline CSS (self-contained).
    """
    import great_tables as gt_mod
    import polars as pl

    if not isinstance(df, pl.DataFrame):
        msg = f"make_gt expects a polars DataFrame, got {type(df).__name__}"
        raise TypeError(msg)

    tbl = gt_mod.GT(df)

    if title:
        tbl = tbl.tab_header(title=title, subtitle=subtitle)

    if column_labels:
        tbl = tbl.cols_label(**{k: v for k, v in column_labels.items() if k in df.columns})

    for col_name, fmt in (number_formats or {}).items():
        if col_name in df.columns:
            tbl = tbl.fmt_number(
                columns=col_name,
                decimals=_decimals_from_fmt(fmt),
                use_seps="," in fmt,
            )

    if source_note:
        tbl = tbl.tab_source_note(source_note)

    # Rules above and below the header and body only
    tbl = tbl.tab_options(
        table_border_top_style="solid",
        table_border_top_width="2px",
        table_border_top_color="#222222",
        table_border_bottom_style="solid",
        table_border_bottom_width="2px",
        table_border_bottom_color="#222222",
        column_labels_border_bottom_style="solid",
        column_labels_border_bottom_width="1px",
        column_labels_border_bottom_color="#222222",
        table_width="100%",
        table_font_size="13px",
        heading_title_font_size="15px",
        source_notes_font_size="11px",
    )

    return tbl.as_raw_html(inline_css=True)


def _decimals_from_fmt(fmt: str) -> int:
    """Extract decimal count from a format spec like '.3f' or ',.1f'."""
    m = re.search(r"\.(\d+)f", fmt)
    return int(m.group(1)) if m else 0


# ── ReportBuilder ─────────────────────────────────────────────────────────────


@dataclass
class ReportBuilder:
    """Assembles report sections into a single self-contained HTML file."""

    title: str = "Analysis Report"
    dataset: str = ""
    git_hash: str = ""
    _sections: list[SectionType] = field(default_factory=list)

    def add(self, section: SectionType) -> None:
        """Append a section to the report."""
        self._sections.append(section)

    @property
    def has_sections(self) -> bool:
        return len(self._sections) > 0

    @property
    def n_sections(self) -> int:
        return len(self._sections)

    def render(self) -> str:
        """Render all sections into a complete HTML document."""
        sections = [
            {"number": i, "id": s.id, "title": s.title, "content": s.render()}
            for i, s in enumerate(self._sections, 1)
        ]
        template = Environment(autoescape=False).from_string(REPORT_TEMPLATE)
        return template.render(
            title=self.title,
            dataset=self.dataset,
            git_hash=self.git_hash,
            generated_at=datetime.now().strftime("%Y-%m-%d %H:%M"),
            sections=sections,
            css=REPORT_CSS,
        )

    def write(self, path: Path) -> None:
        """Render and write the HTML report to disk."""
        path.write_text(self.render(), encoding="utf-8")


# ── Template & CSS ────────────────────────────────────────────────────────────


REPORT_CSS = """\
body {
  font-family: "Helvetica Neue", Arial, sans-serif;
  max-width: 1200px;
  margin: 0 auto;
  padding: 24px 32px;
  color: #1b1b1b;
  line-height: 1.5;
}
header { border-bottom: 3px solid #2e4d2c; margin-bottom: 24px; padding-bottom: 10px; }
header h1 { font-size: 24px; margin: 0 0 4px 0; }
header .meta { font-size: 13px; color: #555; }
header .meta span { margin-right: 16px; }
nav.toc { background: #f4f6f2; border: 1px solid #d6dccf; padding: 14px 20px; margin-bottom: 28px; }
nav.toc ol { column-count: 2; font-size: 13px; }
nav.toc a { color: #2e5e8c; text-decoration: none; }
section.report-section { margin-bottom: 36px; }
section.report-section h2 { font-size: 18px; border-bottom: 2px solid #2e4d2c; padding-bottom: 4px; }
.section-number { color: #888; font-weight: 400; margin-right: 6px; }
.table-container { overflow-x: auto; margin-bottom: 12px; }
.figure-container { text-align: center; margin: 12px 0; }
.figure-container img { max-width: 100%; height: auto; }
.caption { font-size: 12px; color: #666; font-style: italic; margin-top: 6px; }
footer { margin-top: 48px; border-top: 1px solid #ccc; font-size: 11px; color: #888; text-align: center; }
@media print { nav.toc { display: none; } }"""

REPORT_TEMPLATE = """\
<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8" />
  <title>{{ title }}</title>
  <style>{{ css }}</style>
</head>
<body>
  <header>
    <h1>{{ title }}</h1>
    <div class="meta">
      {% if dataset %}<span>Dataset: <strong>{{ dataset }}</strong></span>{% endif %}
      <span>Generated: {{ generated_at }}</span>
      {% if git_hash and git_hash != "unknown" %}<span>Git: <code>{{ git_hash[:8] }}</code></span>{% endif %}
    </div>
  </header>

  <nav class="toc">
    <ol>
      {% for s in sections %}<li><a href="#{{ s.id }}">{{ s.title }}</a></li>
      {% endfor %}
    </ol>
  </nav>

  {% for s in sections %}
  <section class="report-section" id="section-{{ s.id }}">
    <h2><span class="section-number">{{ s.number }}.</span> {{ s.title }}</h2>
    {{ s.content }}
  </section>
  {% endfor %}

  <footer>{{ title }} &mdash; {{ generated_at }}</footer>
</body>
</html>"""
