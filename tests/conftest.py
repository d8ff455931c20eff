"""Shared fixtures for Fieldedge tests.

Builds synthetic InferenceData that follows the upstream posterior contract
(Intercept, b[term], r_<group>, family attrs) and a small balanced trap table
where Vegetable fields were only sampled out to 25 m.
"""

import sys
from pathlib import Path

import arviz as az
import numpy as np
import polars as pl
import pytest
import xarray as xr

sys.path.insert(0, str(Path(__file__).parent.parent))
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from fieldedge.config import CROP_TYPES, HABITAT_TYPES
from fieldedge.models import MODEL_REGISTRY, FittedModel

TRAP_DISTANCES = (0.0, 5.0, 10.0, 25.0, 50.0)
VEGETABLE_MAX_DIST = 25.0

DEFAULT_TERMS = {
    "dist_scaled": -0.2,
    "log_trap_days": 0.5,
    "crop[Maize]": 0.3,
    "habitat[woody]": 0.4,
    "dist_scaled:habitat[woody]": -0.1,
}


def make_idata(
    terms: dict[str, float] | None = None,
    *,
    intercept: float = 1.0,
    family: str = "poisson",
    link: str | None = None,
    n_chains: int = 2,
    n_draws: int = 20,
    sd: float = 0.0,
    seed: int = 42,
    groups: dict[str, dict[str, float]] | None = None,
    sigma: float | None = None,
    attrs: dict | None = None,
) -> az.InferenceData:
    """Synthetic posterior: coefficient draws centered on the given values.

    With ``sd=0`` every draw is identical, so expected values can be checked
    exactly against the closed form.
    """
    rng = np.random.default_rng(seed)
    shape = (n_chains, n_draws)
    coords: dict = {"chain": np.arange(n_chains), "draw": np.arange(n_draws)}
    data_vars: dict = {
        "Intercept": (["chain", "draw"], intercept + sd * rng.standard_normal(shape)),
    }

    if terms:
        names = list(terms)
        values = np.array([terms[t] for t in names], dtype=np.float64)
        data_vars["b"] = (
            ["chain", "draw", "term"],
            values + sd * rng.standard_normal((*shape, len(names))),
        )
        coords["term"] = names

    for group, levels in (groups or {}).items():
        offsets = np.array(list(levels.values()), dtype=np.float64)
        data_vars[f"r_{group}"] = (
            ["chain", "draw", group],
            np.broadcast_to(offsets, (*shape, len(offsets))).copy(),
        )
        coords[group] = list(levels)

    if sigma is not None:
        data_vars["sigma"] = (["chain", "draw"], np.full(shape, sigma))

    ds_attrs: dict = {"family": family}
    if link is not None:
        ds_attrs["link"] = link
    ds_attrs.update(attrs or {})

    return az.InferenceData(posterior=xr.Dataset(data_vars, coords=coords, attrs=ds_attrs))


def make_observations(seed: int = 42) -> pl.DataFrame:
    """Two studies x 5 crops x 3 habitats x trap distances.

    Study s1 traps for 7 days, s2 for 14. Vegetable fields stop at 25 m.
    """
    rng = np.random.default_rng(seed)
    rows = []
    for study, trap_days in [("s1", 7.0), ("s2", 14.0)]:
        for crop in CROP_TYPES:
            for habitat in HABITAT_TYPES:
                for d in TRAP_DISTANCES:
                    if crop == "Vegetable" and d > VEGETABLE_MAX_DIST:
                        continue
                    rows.append(
                        {
                            "study": study,
                            "site": f"{study}_{crop}_{habitat}",
                            "crop": crop,
                            "habitat": habitat,
                            "distance": d,
                            "trap_days": trap_days,
                            "richness": int(rng.poisson(8)),
                        }
                    )
    return pl.DataFrame(rows)


def make_fitted_model(idata: az.InferenceData | None = None, spec_index: int = 0) -> FittedModel:
    return FittedModel(
        spec=MODEL_REGISTRY[spec_index],
        idata=idata if idata is not None else make_idata(DEFAULT_TERMS),
        observations=make_observations(),
    )


# ── Fixtures ─────────────────────────────────────────────────────────────────


@pytest.fixture
def observations() -> pl.DataFrame:
    return make_observations()


@pytest.fixture
def fitted_model() -> FittedModel:
    """Poisson model with identical draws (exact closed-form checks)."""
    return make_fitted_model()


@pytest.fixture
def noisy_model() -> FittedModel:
    """Poisson model whose draws vary, with study-level intercepts."""
    idata = make_idata(
        DEFAULT_TERMS,
        sd=0.1,
        groups={"study": {"s1": 0.2, "s2": -0.2}},
        attrs={"levels_crop": ",".join(CROP_TYPES), "levels_habitat": ",".join(HABITAT_TYPES)},
    )
    return make_fitted_model(idata)
