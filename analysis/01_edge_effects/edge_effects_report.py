"""Edge-effects HTML report builder.

Adds an introduction, one block of figures and tables per response family,
and the analysis parameters. Each section is a small function over polars
interval summaries.

Usage (called from edge_effects.py):
    from analysis.edge_effects_report import build_edge_effects_report
    build_edge_effects_report(ctx.report, family_results=..., ...)
"""

from pathlib import Path

import polars as pl

from fieldedge.config import SUMMARY_DISTANCES

try:
    from analysis.report import FigureSection, ReportBuilder, TableSection, TextSection, make_gt
except ModuleNotFoundError:
    from report import (  # type: ignore[no-redef]
        FigureSection,
        ReportBuilder,
        TableSection,
        TextSection,
        make_gt,
    )

try:
    from analysis.edge_effects_data import values_at
except ModuleNotFoundError:
    from edge_effects_data import values_at  # type: ignore[no-redef]

POLICY_TEXT = {
    "average": (
        "Curves average the expected response over crop types and/or habitat "
        "types within each posterior draw. The prediction grid contains every "
        "crop-habitat combination once, so this is an equally weighted population "
        "average."
    ),
    "reference": (
        "Curves are conditional on the reference levels (Cereal crop, control "
        "habitat) of every covariate not shown in the panel. Nothing is averaged."
    ),
    "raw": (
        "Curves pool the predictions for every crop-habitat combination without "
        "averaging. Ribbons therefore include the spread between groups as well "
        "as posterior uncertainty."
    ),
}


def build_edge_effects_report(
    report: ReportBuilder,
    *,
    family_results: dict[str, dict],
    marginalization: str,
    interval_method: str,
    params: dict,
) -> None:
    """Build the full edge-effects report by adding sections to the ReportBuilder."""
    _add_how_to_read(report, marginalization, interval_method)

    for res in family_results.values():
        _add_figure(report, res, "overall", f"{res['label']}: Grand Mean", _OVERALL_CAPTION)
        _add_distance_table(report, res)
        _add_figure(report, res, "habitat", f"{res['label']}: By Habitat", _HABITAT_CAPTION)
        _add_figure(report, res, "crop", f"{res['label']}: By Crop", _CROP_CAPTION)
        _add_figure(report, res, "effort", f"{res['label']}: Trapping Effort", _EFFORT_CAPTION)

    _add_analysis_parameters(report, params)

    print(f"  Report: {report.n_sections} sections added")


# ── Captions ─────────────────────────────────────────────────────────────────

_OVERALL_CAPTION = (
    "Expected response averaged over all crops and habitats. Ribbons show 50%, 80% "
    "and 95% credible intervals; ticks mark trap distances."
)
_HABITAT_CAPTION = (
    "One column per adjacent habitat, averaged over crops. Each curve stops at the "
    "furthest trap sampled next to that habitat."
)
_CROP_CAPTION = (
    "One column per crop, averaged over habitats. Each curve stops at the furthest "
    "trap sampled in that crop."
)
_EFFORT_CAPTION = (
    "Expected response as trapping effort increases, at a fixed distance, averaged "
    "over crops and habitats. Ticks mark observed trap-day values."
)


# ── Private section builders ─────────────────────────────────────────────────


def _add_how_to_read(report: ReportBuilder, marginalization: str, interval_method: str) -> None:
    interval_text = (
        "equal-tailed quantile intervals"
        if interval_method == "qi"
        else "highest-density intervals"
    )
    report.add(
        TextSection(
            id="how-to-read",
            title="How to Read This Report",
            html=(
                "<p>Each figure shows how an arthropod community metric changes as you "
                "walk from the field edge into the crop. The solid line is the posterior "
                "median of the expected value; shaded bands are "
                f"{interval_text} (darkest 50%, lightest 95%).</p>"
                "<p>Predictions describe an average study and site: study- and "
                "site-level deviations are left out.</p>"
                f"<p><strong>Marginalization ({marginalization}).</strong> "
                f"{POLICY_TEXT[marginalization]}</p>"
            ),
        )
    )


def _add_figure(report: ReportBuilder, res: dict, key: str, title: str, caption: str) -> None:
    path: Path | None = res["plots"].get(key)
    if path is None or not path.exists():
        return
    report.add(
        FigureSection.from_file(
            f"fig-{res['family']}-{key}",
            title,
            path,
            caption=caption,
        )
    )


def _add_distance_table(report: ReportBuilder, res: dict) -> None:
    """Table: grand-mean median and 95% interval at a few distances per model."""
    summary: pl.DataFrame = res["summaries"].get("overall", pl.DataFrame())
    if summary.height == 0:
        return

    rows = values_at(summary, SUMMARY_DISTANCES, width=0.95)
    if rows.height == 0:
        return

    labels = res["model_labels"]
    display = rows.with_columns(
        pl.col("model").replace(labels).alias("subset")
    ).select("subset", "distance", "median", "lower", "upper")

    html = make_gt(
        display,
        title=f"{res['label']} at selected distances",
        subtitle="Grand mean over crops and habitats",
        column_labels={
            "subset": "Model",
            "distance": "Distance (m)",
            "median": "Median",
            "lower": "95% lower",
            "upper": "95% upper",
        },
        number_formats={
            "distance": ".0f",
            "median": ".2f",
            "lower": ".2f",
            "upper": ".2f",
        },
        source_note="Distances beyond a model's furthest trap are omitted.",
    )
    report.add(
        TableSection(
            id=f"table-{res['family']}",
            title=f"{res['label']}: Selected Distances",
            html=html,
        )
    )


def _add_analysis_parameters(report: ReportBuilder, params: dict) -> None:
    df = pl.DataFrame(
        {
            "parameter": list(params.keys()),
            "value": [str(v) for v in params.values()],
        }
    )
    report.add(
        TableSection(
            id="parameters",
            title="Analysis Parameters",
            html=make_gt(df, title="Run parameters"),
        )
    )
