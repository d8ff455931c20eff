"""Edge-effect curve computations — pure functions, no file I/O.

Grid construction, posterior expectation draws, marginalization over nuisance
covariates, truncation to the sampled range, and interval summaries. All
functions take polars DataFrames (or FittedModel objects) and return polars
DataFrames, so they are testable with synthetic data.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import arviz as az
import numpy as np
import polars as pl
from numpy.typing import NDArray

from fieldedge.config import (
    CROP_TYPES,
    DIST_STEP,
    GROUPING_KEYS,
    HABITAT_TYPES,
    INTERVAL_METHODS,
    INTERVAL_WIDTHS,
    MARGINALIZATION_POLICIES,
    NUISANCE_DIMS,
    REFERENCE_LEVELS,
    SWEEP_TOLERANCE,
    TRAP_DAYS_STEP,
)
from fieldedge.models import FittedModel
from fieldedge.posterior import group_effect_columns, posterior_epred

# ── Grid Construction ───────────────────────────────────────────────────────


def sweep_values(lo: float, hi: float, step: float) -> NDArray[np.float64]:
    """Fixed-step values covering [lo, hi], always ending exactly at *hi*.

    Values are computed as ``lo + k * step`` (no accumulation). The terminal
    point is *hi* itself: a near-multiple within float noise snaps to it, and
    a partial last step is closed by appending it.

    Examples:
        sweep_values(0, 50, 25)  → [0, 25, 50]
        sweep_values(0, 0.3, 0.1) → [0, 0.1, 0.2, 0.3]
        sweep_values(0, 60, 25)  → [0, 25, 50, 60]
    """
    if step <= 0:
        msg = f"Sweep step must be positive, got {step}"
        raise ValueError(msg)
    if hi < lo:
        msg = f"Sweep upper bound {hi} is below lower bound {lo}"
        raise ValueError(msg)

    n_full = int(np.floor((hi - lo) / step + SWEEP_TOLERANCE))
    values = lo + step * np.arange(n_full + 1, dtype=np.float64)
    if hi - values[-1] <= SWEEP_TOLERANCE * step:
        values[-1] = hi
    else:
        values = np.append(values, hi)
    return values


def distance_scaling(model: FittedModel) -> tuple[float, float]:
    """Center and scale used to standardize distance when the model was fit.

    Prefers ``distance_center``/``distance_scale`` posterior attrs; otherwise
    the mean and sample SD of the observed distances.
    """
    attrs = model.idata.posterior.attrs
    if "distance_center" in attrs and "distance_scale" in attrs:
        return float(attrs["distance_center"]), float(attrs["distance_scale"])

    dist = model.observations["distance"].cast(pl.Float64)
    center = float(dist.mean())
    scale = float(dist.std(ddof=1)) if dist.len() > 1 else 1.0
    if not np.isfinite(scale) or scale <= 0:
        scale = 1.0
    return center, scale


def mean_log_trap_days(observations: pl.DataFrame) -> float:
    """Representative sampling effort: mean of log trap-days."""
    trap_days = observations["trap_days"].cast(pl.Float64)
    if (trap_days <= 0).any():
        msg = "trap_days must be positive to take logs"
        raise ValueError(msg)
    return float(trap_days.log().mean())


def group_levels(model: FittedModel) -> pl.DataFrame | None:
    """Observed combinations of the grouping columns that carry group-level draws.

    Columns present in the observation table contribute their distinct observed
    combinations (sites stay nested in their study); columns only known from the
    posterior contribute every fitted level. Returns None when the model has no
    group-level effects.
    """
    fitted = group_effect_columns(model.idata.posterior)
    if not fitted:
        return None

    observed = [c for c in fitted if c in model.observations.columns]
    if observed:
        combos = (
            model.observations.select([pl.col(c).cast(pl.Utf8) for c in observed])
            .unique()
            .sort(observed)
        )
    else:
        combos = pl.DataFrame()
    for column in fitted:
        if column in observed:
            continue
        levels = pl.DataFrame({column: fitted[column]})
        combos = levels if combos.width == 0 else combos.join(levels, how="cross")
    return combos


def _cross_levels(
    axis: pl.DataFrame,
    crops: tuple[str, ...],
    habitats: tuple[str, ...],
    groups: pl.DataFrame | None = None,
) -> pl.DataFrame:
    levels = pl.DataFrame({"crop": list(crops)}).join(
        pl.DataFrame({"habitat": list(habitats)}), how="cross"
    )
    if groups is not None:
        levels = levels.join(groups, how="cross")
    return axis.join(levels, how="cross")


def build_distance_grid(
    model: FittedModel,
    *,
    step: float = DIST_STEP,
    crops: tuple[str, ...] = CROP_TYPES,
    habitats: tuple[str, ...] = HABITAT_TYPES,
    include_groups: bool = False,
) -> pl.DataFrame:
    """Distance sweep x crop x habitat, trap-days held at the mean log value.

    The sweep covers the observed distance range of the model's data. With
    *include_groups*, every observed study/site combination is crossed in as
    well, so group-level intercepts can be added and averaged out per draw.
    """
    obs = model.observations
    lo = float(obs["distance"].min())
    hi = float(obs["distance"].max())
    center, scale = distance_scaling(model)
    log_td = mean_log_trap_days(obs)

    distance = sweep_values(lo, hi, step)
    axis = pl.DataFrame(
        {
            "distance": distance,
            "dist_scaled": (distance - center) / scale,
            "log_trap_days": np.full(len(distance), log_td),
            "trap_days": np.full(len(distance), float(np.exp(log_td))),
        }
    )
    groups = group_levels(model) if include_groups else None
    return _cross_levels(axis, crops, habitats, groups)


def build_effort_grid(
    model: FittedModel,
    *,
    distance: float | None = None,
    step: float = TRAP_DAYS_STEP,
    crops: tuple[str, ...] = CROP_TYPES,
    habitats: tuple[str, ...] = HABITAT_TYPES,
    include_groups: bool = False,
) -> pl.DataFrame:
    """Trap-days sweep x crop x habitat at a fixed distance.

    *distance* defaults to the centering distance (``dist_scaled == 0``).
    *include_groups* crosses in the group levels as in :func:`build_distance_grid`.
    """
    obs = model.observations
    lo = float(obs["trap_days"].min())
    hi = float(obs["trap_days"].max())
    center, scale = distance_scaling(model)
    fixed = center if distance is None else float(distance)

    trap_days = sweep_values(lo, hi, step)
    if trap_days[0] <= 0:
        msg = f"Model {model.model_id!r}: trap_days must be positive, got min {lo}"
        raise ValueError(msg)
    axis = pl.DataFrame(
        {
            "trap_days": trap_days,
            "log_trap_days": np.log(trap_days),
            "distance": np.full(len(trap_days), fixed),
            "dist_scaled": np.full(len(trap_days), (fixed - center) / scale),
        }
    )
    groups = group_levels(model) if include_groups else None
    return _cross_levels(axis, crops, habitats, groups)


# ── Posterior Draws ─────────────────────────────────────────────────────────


def predict_draws(
    models: dict[str, FittedModel],
    build_grid: Callable[[FittedModel], pl.DataFrame],
    **epred_kwargs: Any,
) -> pl.DataFrame:
    """Expected-response draws for each model over its own grid, stacked.

    Draw indices stay per-model; downstream grouping always includes ``model``.
    """
    frames = []
    for model_id, model in models.items():
        grid = build_grid(model)
        draws = posterior_epred(model, grid, **epred_kwargs)
        print(f"    {model_id}: {grid.height} grid rows -> {draws.height:,} draws")
        frames.append(draws)
    return pl.concat(frames, how="vertical")


# ── Marginalization ─────────────────────────────────────────────────────────


def _check_by(by: str | None) -> list[str]:
    if by not in GROUPING_KEYS:
        msg = f"Unknown grouping key {by!r}. Supported: {list(GROUPING_KEYS)}"
        raise ValueError(msg)
    return [] if by is None else [by]


def check_balanced(draws: pl.DataFrame, keys: list[str]) -> None:
    """Every marginal cell must average the same number of grid rows.

    Raises:
        ValueError: If cell sizes differ (the grid was not a full product).
    """
    sizes = draws.group_by(keys).len()["len"].unique()
    if sizes.len() > 1:
        msg = (
            f"Unbalanced grid: marginal cells over {keys} average "
            f"{sorted(sizes.to_list())} rows; expected a full Cartesian product"
        )
        raise ValueError(msg)


def marginalize_draws(
    draws: pl.DataFrame,
    by: str | None = None,
    *,
    policy: str = "average",
    x: str = "distance",
) -> pl.DataFrame:
    """Collapse nuisance covariates to one curve per model (and group).

    Policies:
      - ``average``: mean of ``epred`` within (model, x, [by], draw). The grid
        is an artificially balanced product, so the unweighted mean is the
        population average. Averaging never crosses draws.
      - ``reference``: keep only the reference level of each marginalized
        dimension (conditional on Cereal / control). Study/site rows left by
        group-level predictions are still averaged within the draw.
      - ``raw``: no averaging; rows from every nuisance level are pooled, so
        later intervals include between-group variation.

    Returns columns ``model``, *x*, [*by*], ``draw``, ``epred``.
    """
    by_cols = _check_by(by)
    if policy not in MARGINALIZATION_POLICIES:
        msg = f"Unknown marginalization policy {policy!r}. Supported: {MARGINALIZATION_POLICIES}"
        raise ValueError(msg)

    keys = ["model", x, *by_cols, "draw"]

    if policy == "average":
        check_balanced(draws, keys)
        return draws.group_by(keys).agg(pl.col("epred").mean()).sort(keys)

    if policy == "reference":
        nuisance = [d for d in NUISANCE_DIMS if d not in by_cols]
        filtered = draws
        for dim in nuisance:
            filtered = filtered.filter(pl.col(dim) == REFERENCE_LEVELS[dim])
        check_balanced(filtered, keys)
        return filtered.group_by(keys).agg(pl.col("epred").mean()).sort(keys)

    return draws.select(*keys, "epred").sort(keys)


def max_distance_by_group(
    observations: dict[str, pl.DataFrame],
    by: str | None = None,
) -> pl.DataFrame:
    """Maximum observed distance per model (and group) in the source data.

    Returns columns ``model``, [*by*], ``max_dist``.
    """
    by_cols = _check_by(by)
    frames = []
    for model_id, obs in observations.items():
        if by_cols:
            agg = obs.group_by(by_cols).agg(pl.col("distance").cast(pl.Float64).max())
        else:
            agg = obs.select(pl.col("distance").cast(pl.Float64).max())
        frames.append(
            agg.rename({"distance": "max_dist"}).with_columns(pl.lit(model_id).alias("model"))
        )
    return pl.concat(frames, how="vertical").select("model", *by_cols, "max_dist")


def attach_max_distance(
    curves: pl.DataFrame,
    max_dist: pl.DataFrame,
    by: str | None = None,
) -> pl.DataFrame:
    """Left-join ``max_dist`` onto marginal curves.

    Groups never sampled in a model's data get a null ``max_dist`` and are
    removed by :func:`truncate_curves`.
    """
    by_cols = _check_by(by)
    if by_cols:
        max_dist = max_dist.with_columns(pl.col(by_cols[0]).cast(curves[by_cols[0]].dtype))
    return curves.join(max_dist, on=["model", *by_cols], how="left")


def truncate_curves(curves: pl.DataFrame, x: str = "distance") -> pl.DataFrame:
    """Keep rows at or below the group's maximum observed distance."""
    return curves.filter(pl.col(x) <= pl.col("max_dist"))


# ── Interval Summaries ──────────────────────────────────────────────────────


def _hdi_bounds(values: NDArray[np.float64], width: float) -> tuple[float, float]:
    if len(values) < 2:
        v = float(values[0]) if len(values) else float("nan")
        return v, v
    lo, hi = az.hdi(values, hdi_prob=width)
    return float(lo), float(hi)


def summarize_intervals(
    curves: pl.DataFrame,
    by: str | None = None,
    *,
    widths: tuple[float, ...] = INTERVAL_WIDTHS,
    method: str = "qi",
    x: str = "distance",
) -> pl.DataFrame:
    """Median and nested credible intervals of ``epred`` at each x value.

    ``qi`` gives equal-tailed quantile intervals; ``hdi`` gives highest
    density intervals via ArviZ.

    Returns long format: ``model``, *x*, [*by*], ``median``, ``width``,
    ``lower``, ``upper`` (one row per interval width).
    """
    by_cols = _check_by(by)
    if method not in INTERVAL_METHODS:
        msg = f"Unknown interval method {method!r}. Supported: {INTERVAL_METHODS}"
        raise ValueError(msg)

    keys = ["model", x, *by_cols]

    if method == "qi":
        exprs = [pl.col("epred").median().alias("median")]
        for i, w in enumerate(widths):
            tail = (1.0 - w) / 2.0
            exprs.append(pl.col("epred").quantile(tail, interpolation="linear").alias(f"lo_{i}"))
            exprs.append(
                pl.col("epred").quantile(1.0 - tail, interpolation="linear").alias(f"hi_{i}")
            )
        wide = curves.group_by(keys).agg(exprs)
    else:
        grouped = curves.group_by(keys).agg(pl.col("epred"))
        schema = dict(grouped.select(keys).schema)
        schema["median"] = pl.Float64
        for i in range(len(widths)):
            schema[f"lo_{i}"] = pl.Float64
            schema[f"hi_{i}"] = pl.Float64
        rows: list[dict] = []
        for row in grouped.iter_rows(named=True):
            values = np.asarray(row.pop("epred"), dtype=np.float64)
            row["median"] = float(np.median(values)) if len(values) else float("nan")
            for i, w in enumerate(widths):
                row[f"lo_{i}"], row[f"hi_{i}"] = _hdi_bounds(values, w)
            rows.append(row)
        wide = pl.DataFrame(rows, schema=schema)

    long = pl.concat(
        [
            wide.select(
                *keys,
                "median",
                pl.lit(w).alias("width"),
                pl.col(f"lo_{i}").alias("lower"),
                pl.col(f"hi_{i}").alias("upper"),
            )
            for i, w in enumerate(widths)
        ],
        how="vertical",
    )
    return long.sort([*keys, "width"])


def values_at(
    summary: pl.DataFrame,
    targets: tuple[float, ...],
    *,
    width: float = 0.95,
    x: str = "distance",
) -> pl.DataFrame:
    """Summary rows at the grid value nearest each target, for one width.

    Targets outside a curve's (truncated) range are skipped.
    """
    sub = summary.filter(pl.col("width") == width)
    frames = []
    for model_id in sub["model"].unique(maintain_order=True).to_list():
        model_rows = sub.filter(pl.col("model") == model_id)
        grid_x = np.sort(model_rows[x].unique().to_numpy())
        if len(grid_x) == 0:
            continue
        step = float(np.min(np.diff(grid_x))) if len(grid_x) > 1 else 0.0
        for t in targets:
            nearest = float(grid_x[np.argmin(np.abs(grid_x - t))])
            if abs(nearest - t) > step:
                continue
            frames.append(model_rows.filter(pl.col(x) == nearest))
    if not frames:
        return sub.clear()
    return pl.concat(frames, how="vertical")


def rug_records(observations: dict[str, pl.DataFrame], x: str = "distance") -> pl.DataFrame:
    """Distinct (crop, habitat, x) triples per model, for display only."""
    frames = [
        obs.select("crop", "habitat", pl.col(x).cast(pl.Float64))
        .unique()
        .with_columns(pl.lit(model_id).alias("model"))
        for model_id, obs in observations.items()
    ]
    return (
        pl.concat(frames, how="vertical")
        .select("model", "crop", "habitat", x)
        .sort("model", "crop", "habitat", x)
    )
