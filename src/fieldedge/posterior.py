"""Posterior expectation draws from pre-fitted edge-effect models.

Computes the expectation of the posterior predictive distribution for new
covariate rows directly from the stored coefficient draws (numpy over the
InferenceData arrays), so no PyMC model is rebuilt or recompiled.

Upstream contract for ``idata.posterior``:
  - ``Intercept`` (chain, draw): population-level intercept.
  - ``b`` (chain, draw, term): population-level coefficients. Term names are
    ``factor(:factor)*`` where a factor is a numeric column (``dist_scaled``)
    or a treatment-coded indicator (``habitat[woody]``).
  - ``r_<group>`` (chain, draw, <group>): optional group-level intercepts.
  - ``sigma``: required for the lognormal family.
  - attrs ``family``, optional ``link`` and ``levels_<column>``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

import numpy as np
import polars as pl
import xarray as xr
from numpy.typing import NDArray

from fieldedge.config import RANDOM_SEED
from fieldedge.models import FittedModel

DEFAULT_LINKS = {
    "poisson": "log",
    "negbinomial": "log",
    "gamma": "log",
    "gaussian": "identity",
    "lognormal": "identity",
}

_FACTOR_RE = re.compile(r"^(?P<column>[A-Za-z_][A-Za-z0-9_]*)(?:\[(?P<level>[^\]]+)\])?$")
_GROUP_PREFIX = "r_"


@dataclass(frozen=True)
class TermFactor:
    """One factor of a coefficient term: a numeric column or a level indicator."""

    column: str
    level: str | None = None

    def evaluate(self, grid: pl.DataFrame) -> NDArray[np.float64]:
        values = grid[self.column]
        if self.level is None:
            return values.cast(pl.Float64).to_numpy()
        return (values.cast(pl.Utf8) == self.level).cast(pl.Float64).to_numpy()


def parse_term(term: str) -> tuple[TermFactor, ...]:
    """Split a coefficient name like ``dist_scaled:crop[Maize]`` into factors.

    Raises:
        ValueError: If any factor does not match ``column`` or ``column[level]``.
    """
    factors = []
    for part in term.split(":"):
        m = _FACTOR_RE.match(part.strip())
        if m is None:
            msg = f"Cannot parse coefficient term {term!r} (bad factor {part!r})"
            raise ValueError(msg)
        factors.append(TermFactor(m.group("column"), m.group("level")))
    return tuple(factors)


def design_matrix(
    grid: pl.DataFrame,
    terms: list[str],
    model_id: str = "?",
) -> NDArray[np.float64]:
    """Evaluate population-level terms on the grid, shape (n_rows, n_terms)."""
    x = np.ones((grid.height, len(terms)), dtype=np.float64)
    for j, term in enumerate(terms):
        for factor in parse_term(term):
            if factor.column not in grid.columns:
                msg = (
                    f"Model {model_id!r}: prediction grid lacks column "
                    f"{factor.column!r} required by term {term!r}"
                )
                raise ValueError(msg)
            x[:, j] *= factor.evaluate(grid)
    return x


def resolve_link(posterior: xr.Dataset, model_id: str = "?") -> tuple[str, str]:
    """Return ``(family, link)`` from posterior attrs."""
    family = posterior.attrs.get("family")
    if family not in DEFAULT_LINKS:
        msg = (
            f"Model {model_id!r}: unsupported or missing family {family!r}. "
            f"Supported: {sorted(DEFAULT_LINKS)}"
        )
        raise ValueError(msg)
    link = posterior.attrs.get("link", DEFAULT_LINKS[family])
    if link not in ("log", "identity"):
        msg = f"Model {model_id!r}: unsupported link {link!r}"
        raise ValueError(msg)
    return family, link


def known_levels(posterior: xr.Dataset, column: str) -> tuple[str, ...] | None:
    """Factor levels seen during fitting, or None if the model does not record them."""
    raw = posterior.attrs.get(f"levels_{column}")
    if raw is None:
        return None
    if isinstance(raw, str):
        return tuple(lvl.strip() for lvl in raw.split(",") if lvl.strip())
    return tuple(str(lvl) for lvl in np.atleast_1d(raw))


def find_new_levels(
    grid: pl.DataFrame,
    posterior: xr.Dataset,
    columns: tuple[str, ...] = ("crop", "habitat"),
) -> dict[str, list[str]]:
    """Levels present in the grid but not among the model's fitted levels."""
    new: dict[str, list[str]] = {}
    for column in columns:
        if column not in grid.columns:
            continue
        seen = known_levels(posterior, column)
        if seen is None:
            continue
        unseen = sorted(set(grid[column].cast(pl.Utf8).unique().to_list()) - set(seen))
        if unseen:
            new[column] = unseen
    return new


def stack_draws(da: xr.DataArray) -> NDArray[np.float64]:
    """Flatten (chain, draw) into a leading sample axis, chain-major."""
    stacked = da.stack(sample=("chain", "draw")).transpose("sample", ...)
    return np.asarray(stacked.values, dtype=np.float64)


def select_draws(n_total: int, ndraws: int | None, seed: int = RANDOM_SEED) -> NDArray[np.int64]:
    """Indices of the posterior draws to use; all of them when *ndraws* is None."""
    if ndraws is None or ndraws >= n_total:
        return np.arange(n_total, dtype=np.int64)
    rng = np.random.default_rng(seed)
    return np.sort(rng.choice(n_total, size=ndraws, replace=False)).astype(np.int64)


def group_effect_columns(posterior: xr.Dataset) -> dict[str, list[str]]:
    """Grouping columns with ``r_<group>`` draws, mapped to their fitted levels."""
    groups: dict[str, list[str]] = {}
    for var in posterior.data_vars:
        if not str(var).startswith(_GROUP_PREFIX):
            continue
        da = posterior[var]
        level_dim = [d for d in da.dims if d not in ("chain", "draw")][0]
        groups[str(var)[len(_GROUP_PREFIX) :]] = [str(v) for v in da.coords[level_dim].values]
    return groups


def _group_offsets(
    posterior: xr.Dataset,
    grid: pl.DataFrame,
    draw_idx: NDArray[np.int64],
    *,
    allow_new_levels: bool,
    model_id: str,
) -> NDArray[np.float64]:
    """Sum of group-level intercepts for each (draw, grid row)."""
    offset = np.zeros((len(draw_idx), grid.height), dtype=np.float64)
    for column, levels in group_effect_columns(posterior).items():
        if column not in grid.columns:
            msg = (
                f"Model {model_id!r}: group-level effects requested but the grid "
                f"has no {column!r} column"
            )
            raise ValueError(msg)
        lookup = {lvl: i for i, lvl in enumerate(levels)}
        values = stack_draws(posterior[f"{_GROUP_PREFIX}{column}"])[draw_idx]  # (n_draws, n_levels)

        grid_levels = grid[column].cast(pl.Utf8).to_list()
        unseen = sorted({g for g in grid_levels if g not in lookup})
        if unseen and not allow_new_levels:
            msg = f"Model {model_id!r}: unseen {column} levels {unseen}"
            raise ValueError(msg)

        # New levels get the population mean (zero offset)
        padded = np.concatenate([values, np.zeros((values.shape[0], 1))], axis=1)
        idx = np.array([lookup.get(g, len(levels)) for g in grid_levels], dtype=np.int64)
        offset += padded[:, idx]
    return offset


def linear_predictor(
    model: FittedModel,
    grid: pl.DataFrame,
    draw_idx: NDArray[np.int64],
    *,
    include_group_effects: bool = False,
    allow_new_levels: bool = True,
) -> NDArray[np.float64]:
    """Linear predictor eta, shape (n_draws, n_rows)."""
    posterior = model.idata.posterior
    if "Intercept" not in posterior:
        msg = f"Model {model.model_id!r}: posterior has no 'Intercept' variable"
        raise ValueError(msg)

    eta = np.repeat(stack_draws(posterior["Intercept"])[draw_idx][:, None], grid.height, axis=1)

    if "b" in posterior:
        b = posterior["b"]
        term_dim = [d for d in b.dims if d not in ("chain", "draw")][0]
        terms = [str(t) for t in b.coords[term_dim].values]
        x = design_matrix(grid, terms, model.model_id)
        eta = eta + stack_draws(b)[draw_idx] @ x.T

    if include_group_effects:
        eta = eta + _group_offsets(
            posterior,
            grid,
            draw_idx,
            allow_new_levels=allow_new_levels,
            model_id=model.model_id,
        )
    return eta


def expected_response(
    eta: NDArray[np.float64],
    posterior: xr.Dataset,
    draw_idx: NDArray[np.int64],
    model_id: str = "?",
) -> NDArray[np.float64]:
    """Map the linear predictor to the expected response scale."""
    family, link = resolve_link(posterior, model_id)
    if family == "lognormal":
        if "sigma" not in posterior:
            msg = f"Model {model_id!r}: lognormal family needs a 'sigma' draw"
            raise ValueError(msg)
        sigma = stack_draws(posterior["sigma"])[draw_idx]
        return np.exp(eta + 0.5 * sigma[:, None] ** 2)
    if link == "log":
        return np.exp(eta)
    return eta


def posterior_epred(
    model: FittedModel,
    grid: pl.DataFrame,
    *,
    include_group_effects: bool = False,
    allow_new_levels: bool = True,
    ndraws: int | None = None,
    seed: int = RANDOM_SEED,
) -> pl.DataFrame:
    """Expected-response draws for every grid row.

    Returns the grid columns plus ``model``, ``draw`` and ``epred``, one row per
    (grid row x posterior draw). Draw indices index the model's flattened
    (chain, draw) sample and are only comparable within one model.

    Raises:
        ValueError: On a malformed grid, unsupported family, or unseen factor
            levels when ``allow_new_levels`` is False.
    """
    posterior = model.idata.posterior
    new_levels = find_new_levels(grid, posterior)
    if new_levels:
        if not allow_new_levels:
            msg = f"Model {model.model_id!r}: grid has levels not seen in fitting: {new_levels}"
            raise ValueError(msg)
        print(f"    {model.model_id}: new levels take the reference effect: {new_levels}")

    n_total = posterior.sizes["chain"] * posterior.sizes["draw"]
    draw_idx = select_draws(n_total, ndraws, seed)

    eta = linear_predictor(
        model,
        grid,
        draw_idx,
        include_group_effects=include_group_effects,
        allow_new_levels=allow_new_levels,
    )
    epred = expected_response(eta, posterior, draw_idx, model.model_id)

    n_rows = grid.height
    row_idx = pl.Series(np.tile(np.arange(n_rows), len(draw_idx)))
    return grid.select(pl.all().gather(row_idx)).with_columns(
        pl.lit(model.model_id).alias("model"),
        pl.Series("draw", np.repeat(draw_idx, n_rows)),
        pl.Series("epred", epred.ravel()),
    )
