"""
Field-Edge Arthropod Response Curves (Phase 1)

Post-processes the ten pre-fitted Bayesian regression models of arthropod
species richness, activity density, and body size. For each model it draws
posterior expectations over a synthetic covariate grid (distance x crop x
habitat), marginalizes the draws over the nuisance covariates, and renders
faceted ribbon plots truncated to each group's sampled distance range, with
rug marks at the observed trap distances.

Usage:
  uv run python analysis/01_edge_effects/edge_effects.py [--data-dir data]
      [--ndraws 1000] [--marginalization average] [--interval-method qi]

Outputs (in results/<dataset>/01_edge_effects/<date>/):
  - data/:   Parquet interval summaries per family and grouping
  - plots/:  PNG ribbon plots per family and grouping, trap-effort curves
  - curve_manifest.json, run_info.json, run_log.txt
  - 01_edge_effects_report.html
"""

import argparse
import gc
import json
import sys
from functools import partial
from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import numpy as np
import polars as pl
from matplotlib.patches import Patch

sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

from fieldedge.config import (
    CROP_TYPES,
    DATA_DIR,
    DEFAULT_DATASET,
    DEFAULT_POLICY,
    DIST_STEP,
    GROUPING_KEYS,
    HABITAT_TYPES,
    INTERVAL_METHODS,
    INTERVAL_WIDTHS,
    MARGINALIZATION_POLICIES,
    RANDOM_SEED,
    TRAP_DAYS_STEP,
)
from fieldedge.models import FAMILY_LABELS, MODEL_REGISTRY, FittedModel, load_models

try:
    from analysis.run_context import RunContext
except ModuleNotFoundError:
    from run_context import RunContext

try:
    from analysis.edge_effects_data import (
        attach_max_distance,
        build_distance_grid,
        build_effort_grid,
        marginalize_draws,
        max_distance_by_group,
        predict_draws,
        rug_records,
        summarize_intervals,
        truncate_curves,
    )
except ModuleNotFoundError:
    from edge_effects_data import (  # type: ignore[no-redef]
        attach_max_distance,
        build_distance_grid,
        build_effort_grid,
        marginalize_draws,
        max_distance_by_group,
        predict_draws,
        rug_records,
        summarize_intervals,
        truncate_curves,
    )

try:
    from analysis.edge_effects_report import build_edge_effects_report
except ModuleNotFoundError:
    from edge_effects_report import build_edge_effects_report  # type: ignore[no-redef]

# ── Primer ───────────────────────────────────────────────────────────────────

EDGE_EFFECTS_PRIMER = """\
# Field-Edge Arthropod Response Curves

## Purpose

Shows how arthropod species richness, activity density, and body-size
composition change with distance from the field edge, and how that change
depends on crop type and on the semi-natural habitat bordering the field.

## Method

1. **Load** ten pre-fitted Bayesian regression models (ArviZ NetCDF) and the
   pitfall-trap tables they were fit on.
2. **Build a grid** for each model: every distance from the field edge to the
   furthest trap (1 m steps) crossed with all five crop types and all three
   habitat types, with trapping effort held at the mean of log trap-days.
3. **Draw posterior expectations** for each grid row. These are expected
   values (no observation noise) and ignore study and site effects, so they
   describe the population-level trend.
4. **Marginalize.** Within each posterior draw, average over crop types
   and/or habitat types. The grid is balanced, so a plain mean is the
   population average. Averaging never mixes draws, which keeps the credible
   intervals honest.
5. **Plot** the median curve with 50/80/95% credible ribbons, cut off at the
   furthest distance actually sampled in each crop or habitat.

## Inputs

- `data/models/<model_id>.nc` — fitted models (one per registry entry)
- `data/observations/<table>.parquet` — trap tables (`richness`,
  `activity_density`, `body_size`)

## Outputs

### `data/` — Parquet intermediates

| File | Description |
|------|-------------|
| `intervals_{family}_{grouping}.parquet` | Median + interval bounds per distance |
| `effort_{family}.parquet` | Median + interval bounds per trap-days value |

### `plots/` — PNG visualizations

| File | Description |
|------|-------------|
| `curves_{family}_overall.png` | Grand-mean response to distance |
| `curves_{family}_habitat.png` | Response to distance by adjacent habitat |
| `curves_{family}_crop.png` | Response to distance by crop type |
| `effort_{family}.png` | Response to trapping effort |

## Interpretation Guide

- **Darkest ribbon** = 50% credible interval, lightest = 95%.
- **Rug ticks** along the bottom mark distances where traps actually were.
  Curves stop at the furthest trap in each panel.
- Values are expected counts (richness, activity density) or expected size on
  the response scale, for an average study and site.

## Caveats

- Averaging over crops and habitats is one of several defensible summaries.
  `--marginalization reference` conditions on Cereal / control instead, and
  `--marginalization raw` pools all combinations without averaging (wider
  intervals that include between-group spread).
- Curves beyond a group's sampled range are hidden, not extrapolated.
"""

# ── Constants ────────────────────────────────────────────────────────────────

FAMILY_COLORS = {
    "richness": "#2E7D32",
    "activity_density": "#1565C0",
    "body_size": "#BF5B04",
}
RIBBON_ALPHAS = {0.5: 0.45, 0.8: 0.28, 0.95: 0.15}
FAMILY_YLABELS = {
    "richness": "Expected species richness",
    "activity_density": "Expected activity density",
    "body_size": "Expected body size (mm)",
}
GROUPING_NAMES = {None: "overall", "crop": "crop", "habitat": "habitat"}
GROUP_LEVELS = {"crop": CROP_TYPES, "habitat": HABITAT_TYPES}


# ── Helpers ──────────────────────────────────────────────────────────────────


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Field-edge arthropod response curves")
    parser.add_argument("--dataset", default=DEFAULT_DATASET, help="Label for the results tree")
    parser.add_argument(
        "--data-dir",
        default=str(DATA_DIR),
        help="Directory holding models/ and observations/",
    )
    parser.add_argument(
        "--families",
        nargs="+",
        default=list(FAMILY_LABELS),
        choices=list(FAMILY_LABELS),
        help="Response families to process",
    )
    parser.add_argument("--ndraws", type=int, default=None, help="Subsample posterior draws")
    parser.add_argument("--seed", type=int, default=RANDOM_SEED, help="Seed for draw subsampling")
    parser.add_argument(
        "--marginalization",
        default=DEFAULT_POLICY,
        choices=MARGINALIZATION_POLICIES,
        help="How nuisance covariates are collapsed",
    )
    parser.add_argument("--interval-method", default="qi", choices=INTERVAL_METHODS)
    parser.add_argument("--dist-step", type=float, default=DIST_STEP, help="Grid step (m)")
    parser.add_argument("--effort-step", type=float, default=TRAP_DAYS_STEP, help="Trap-days step")
    parser.add_argument(
        "--effort-distance",
        type=float,
        default=None,
        help="Fixed distance (m) for effort curves (default: mean observed distance)",
    )
    parser.add_argument(
        "--include-group-effects",
        action="store_true",
        help="Add study/site intercepts for every observed group, averaged per draw",
    )
    parser.add_argument(
        "--strict-levels",
        action="store_true",
        help="Fail on crop/habitat levels a model was not fit with",
    )
    return parser.parse_args()


def print_header(title: str) -> None:
    width = 80
    print(f"\n{'=' * width}")
    print(f"  {title}")
    print(f"{'=' * width}")


def save_fig(fig: plt.Figure, path: Path, dpi: int = 150) -> None:
    fig.savefig(path, dpi=dpi, bbox_inches="tight", facecolor="white")
    plt.close(fig)
    print(f"  Saved: {path.name}")


# ── Plotting ─────────────────────────────────────────────────────────────────


def _draw_rug(ax: plt.Axes, values: np.ndarray) -> None:
    """Tick marks along the bottom of the axes at observed x values."""
    if len(values) == 0:
        return
    ax.plot(
        values,
        np.zeros(len(values)),
        "|",
        transform=ax.get_xaxis_transform(),
        color="#333333",
        markersize=7,
        alpha=0.6,
        clip_on=False,
    )


def plot_response_curves(
    summary: pl.DataFrame,
    rug: pl.DataFrame,
    *,
    by: str | None,
    model_labels: dict[str, str],
    title: str,
    ylabel: str,
    color: str,
    out_path: Path,
    x: str = "distance",
    xlabel: str = "Distance from field edge (m)",
) -> None:
    """Faceted ribbon plot: one row per model, one column per group level.

    Each panel shows nested credible ribbons (widest lightest) around the
    median curve, truncated upstream to the panel's sampled range, plus rug
    ticks at the observed x values for that model and group.
    """
    if summary.height == 0:
        print(f"  {out_path.name}: nothing to plot")
        return

    levels: list[str | None]
    if by is None:
        levels = [None]
    else:
        present = set(summary[by].unique().to_list())
        levels = [lvl for lvl in GROUP_LEVELS[by] if lvl in present]

    model_ids = [m for m in model_labels if m in set(summary["model"].to_list())]
    n_rows, n_cols = len(model_ids), len(levels)
    widths = sorted(summary["width"].unique().to_list(), reverse=True)

    fig, axes = plt.subplots(
        n_rows,
        n_cols,
        figsize=(2.9 * n_cols + 1.2, 2.4 * n_rows + 0.8),
        squeeze=False,
        sharex=True,
        sharey="row",
    )

    for i, model_id in enumerate(model_ids):
        model_rows = summary.filter(pl.col("model") == model_id)
        model_rug = rug.filter(pl.col("model") == model_id)
        for j, level in enumerate(levels):
            ax = axes[i, j]
            panel = model_rows if level is None else model_rows.filter(pl.col(by) == level)
            panel_rug = model_rug if level is None else model_rug.filter(pl.col(by) == level)

            if panel.height == 0:
                ax.text(
                    0.5,
                    0.5,
                    "not sampled",
                    transform=ax.transAxes,
                    ha="center",
                    va="center",
                    fontsize=8,
                    color="#888888",
                )
            else:
                for w in widths:
                    band = panel.filter(pl.col("width") == w).sort(x)
                    ax.fill_between(
                        band[x].to_numpy(),
                        band["lower"].to_numpy(),
                        band["upper"].to_numpy(),
                        color=color,
                        alpha=RIBBON_ALPHAS.get(w, 0.2),
                        linewidth=0,
                    )
                line = panel.filter(pl.col("width") == widths[0]).sort(x)
                ax.plot(line[x].to_numpy(), line["median"].to_numpy(), color=color, linewidth=1.6)

            _draw_rug(ax, panel_rug[x].unique().to_numpy())

            if i == 0:
                ax.set_title("All crops & habitats" if level is None else str(level), fontsize=10)
            if j == 0:
                ax.set_ylabel(model_labels[model_id], fontsize=9)
            if i == n_rows - 1:
                ax.set_xlabel(xlabel, fontsize=9)
            ax.spines["top"].set_visible(False)
            ax.spines["right"].set_visible(False)
            ax.tick_params(labelsize=8)

    handles = [
        Patch(facecolor=color, alpha=RIBBON_ALPHAS.get(w, 0.2), label=f"{int(round(w * 100))}% CI")
        for w in sorted(widths)
    ]
    fig.legend(handles=handles, loc="upper right", fontsize=8, frameon=False)
    fig.suptitle(f"{title}\n{ylabel}", fontsize=12, fontweight="bold")
    fig.tight_layout()
    save_fig(fig, out_path)


# ── Per-Family Processing ────────────────────────────────────────────────────


def process_family(
    family: str,
    models: dict[str, FittedModel],
    args: argparse.Namespace,
    ctx: RunContext,
) -> dict:
    """Distance and effort curves for every model in one response family.

    Draw tables are released before returning; only interval summaries
    (a few thousand rows) are kept for the report.
    """
    label = FAMILY_LABELS[family]
    color = FAMILY_COLORS[family]
    model_labels = {m: models[m].spec.label for m in models}
    observations = {m: fm.observations for m, fm in models.items()}
    epred_kwargs = {
        "include_group_effects": args.include_group_effects,
        "allow_new_levels": not args.strict_levels,
        "ndraws": args.ndraws,
        "seed": args.seed,
    }

    # ── Distance curves ──
    print_header(f"DISTANCE CURVES — {label}")
    draws = predict_draws(
        models,
        partial(
            build_distance_grid,
            step=args.dist_step,
            include_groups=args.include_group_effects,
        ),
        **epred_kwargs,
    )
    rug = rug_records(observations)
    summaries: dict[str, pl.DataFrame] = {}
    plots: dict[str, Path] = {}

    for by in GROUPING_KEYS:
        name = GROUPING_NAMES[by]
        curves = marginalize_draws(draws, by, policy=args.marginalization)
        curves = attach_max_distance(curves, max_distance_by_group(observations, by), by)
        curves = truncate_curves(curves)
        summary = summarize_intervals(
            curves, by, widths=INTERVAL_WIDTHS, method=args.interval_method
        )
        del curves

        print(f"  {name}: {summary.height:,} interval rows")
        summary.write_parquet(ctx.data_dir / f"intervals_{family}_{name}.parquet")

        plot_path = ctx.plots_dir / f"curves_{family}_{name}.png"
        plot_response_curves(
            summary,
            rug,
            by=by,
            model_labels=model_labels,
            title=f"{label} vs. distance from field edge"
            + ("" if by is None else f", by {by}"),
            ylabel=FAMILY_YLABELS[family],
            color=color,
            out_path=plot_path,
        )
        summaries[name] = summary
        plots[name] = plot_path

    n_draw_rows = draws.height
    del draws
    gc.collect()

    # ── Effort curves ──
    print_header(f"EFFORT CURVES — {label}")
    draws = predict_draws(
        models,
        partial(
            build_effort_grid,
            distance=args.effort_distance,
            step=args.effort_step,
            include_groups=args.include_group_effects,
        ),
        **epred_kwargs,
    )
    curves = marginalize_draws(draws, None, policy=args.marginalization, x="trap_days")
    del draws
    effort = summarize_intervals(
        curves, None, widths=INTERVAL_WIDTHS, method=args.interval_method, x="trap_days"
    )
    del curves
    gc.collect()

    effort.write_parquet(ctx.data_dir / f"effort_{family}.parquet")
    effort_path = ctx.plots_dir / f"effort_{family}.png"
    plot_response_curves(
        effort,
        rug_records(observations, x="trap_days"),
        by=None,
        model_labels=model_labels,
        title=f"{label} vs. trapping effort",
        ylabel=FAMILY_YLABELS[family],
        color=color,
        out_path=effort_path,
        x="trap_days",
        xlabel="Trap-days",
    )
    plots["effort"] = effort_path

    return {
        "family": family,
        "label": label,
        "model_labels": model_labels,
        "summaries": summaries,
        "effort": effort,
        "plots": plots,
        "n_draw_rows": n_draw_rows,
    }


# ── Main ─────────────────────────────────────────────────────────────────────


def main() -> None:
    args = parse_args()
    data_dir = Path(args.data_dir)

    with RunContext(
        dataset=args.dataset,
        analysis_name="01_edge_effects",
        params=vars(args),
        primer=EDGE_EFFECTS_PRIMER,
    ) as ctx:
        print(f"Field-Edge Arthropod Response Curves — {args.dataset}")
        print(f"Data:     {data_dir}")
        print(f"Output:   {ctx.run_dir}")
        print(f"Policy:   {args.marginalization} ({args.interval_method} intervals)")

        # ── Load models ──
        print_header("LOADING MODELS")
        specs = [s for s in MODEL_REGISTRY if s.family in args.families]
        all_models = load_models(specs, data_dir)

        # ── Families ──
        family_results: dict[str, dict] = {}
        for family in args.families:
            models = {mid: fm for mid, fm in all_models.items() if fm.spec.family == family}
            family_results[family] = process_family(family, models, args, ctx)

        # ── Manifest ──
        print_header("CURVE MANIFEST")
        manifest: dict = {
            "analysis": "01_edge_effects",
            "dataset": args.dataset,
            "constants": {
                "INTERVAL_WIDTHS": list(INTERVAL_WIDTHS),
                "CROP_TYPES": list(CROP_TYPES),
                "HABITAT_TYPES": list(HABITAT_TYPES),
                "DIST_STEP": args.dist_step,
                "TRAP_DAYS_STEP": args.effort_step,
                "RANDOM_SEED": args.seed,
            },
            "marginalization": args.marginalization,
            "interval_method": args.interval_method,
            "include_group_effects": args.include_group_effects,
            "models": {},
        }
        for mid, fm in all_models.items():
            posterior = fm.idata.posterior
            manifest["models"][mid] = {
                "family": fm.spec.family,
                "subset": fm.spec.subset,
                "response_family": posterior.attrs.get("family"),
                "n_posterior_draws": int(posterior.sizes["chain"] * posterior.sizes["draw"]),
                "n_observations": fm.observations.height,
                "max_distance": float(fm.observations["distance"].max()),
            }
        for family, res in family_results.items():
            manifest[f"{family}_n_draw_rows"] = res["n_draw_rows"]

        manifest_path = ctx.run_dir / "curve_manifest.json"
        with open(manifest_path, "w") as f:
            json.dump(manifest, f, indent=2, default=str)
        print(f"  Saved: {manifest_path.name}")

        # ── HTML report ──
        print_header("HTML REPORT")
        build_edge_effects_report(
            ctx.report,
            family_results=family_results,
            marginalization=args.marginalization,
            interval_method=args.interval_method,
            params=vars(args),
        )

        print_header("DONE")
        print(f"  All outputs in: {ctx.run_dir}")
        print(f"  Parquet files:  {len(list(ctx.data_dir.glob('*.parquet')))}")
        print(f"  PNG plots:      {len(list(ctx.plots_dir.glob('*.png')))}")


if __name__ == "__main__":
    main()
