"""Model registry and loaders for the pre-fitted edge-effect models.

Each fitted model is an ArviZ InferenceData saved to NetCDF by the upstream
fitting step, paired with the observation table it was fit on. Loading is the
only I/O in this package; everything downstream works on in-memory objects.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import arviz as az
import polars as pl

from fieldedge.config import DATA_DIR, MODELS_SUBDIR, OBSERVATIONS_SUBDIR

OBSERVATION_COLUMNS = ("study", "site", "crop", "habitat", "distance", "trap_days")

FAMILY_LABELS = {
    "richness": "Species richness",
    "activity_density": "Activity density",
    "body_size": "Body size",
}


@dataclass(frozen=True)
class ModelSpec:
    """Registry entry for one pre-fitted model.

    Attributes:
        model_id: File stem of the NetCDF file and the ``model`` column value.
        family: Response family (``richness``, ``activity_density``, ``body_size``).
        subset: Species subset or size class the model was fit on.
        label: Display label for facet rows.
        observations: Stem of the observation parquet the model was fit on.
    """

    model_id: str
    family: str
    subset: str
    label: str
    observations: str

    @property
    def idata_filename(self) -> str:
        return f"{self.model_id}.nc"

    @property
    def observations_filename(self) -> str:
        return f"{self.observations}.parquet"


MODEL_REGISTRY: tuple[ModelSpec, ...] = (
    ModelSpec("richness_all", "richness", "all", "All species", "richness"),
    ModelSpec("richness_predatory", "richness", "predatory", "Predatory", "richness"),
    ModelSpec("richness_granivorous", "richness", "granivorous", "Granivorous", "richness"),
    ModelSpec("density_all", "activity_density", "all", "All species", "activity_density"),
    ModelSpec(
        "density_predatory", "activity_density", "predatory", "Predatory", "activity_density"
    ),
    ModelSpec(
        "density_granivorous",
        "activity_density",
        "granivorous",
        "Granivorous",
        "activity_density",
    ),
    ModelSpec("size_cwm", "body_size", "cwm", "Community mean size", "body_size"),
    ModelSpec("size_small", "body_size", "small", "Small (< 5 mm)", "body_size"),
    ModelSpec("size_medium", "body_size", "medium", "Medium (5-10 mm)", "body_size"),
    ModelSpec("size_large", "body_size", "large", "Large (> 10 mm)", "body_size"),
)


def models_for_family(
    family: str,
    registry: tuple[ModelSpec, ...] = MODEL_REGISTRY,
) -> list[ModelSpec]:
    """Return registry entries for one response family, in registry order."""
    specs = [s for s in registry if s.family == family]
    if not specs:
        msg = f"Unknown response family: {family!r}. Known: {sorted(FAMILY_LABELS)}"
        raise ValueError(msg)
    return specs


@dataclass(frozen=True)
class FittedModel:
    """A loaded model: registry entry, posterior, and the data it was fit on."""

    spec: ModelSpec
    idata: az.InferenceData
    observations: pl.DataFrame

    @property
    def model_id(self) -> str:
        return self.spec.model_id


def load_observations(table: str, data_dir: Path = DATA_DIR) -> pl.DataFrame:
    """Read one observation table and check it carries the covariate columns.

    Raises:
        FileNotFoundError: If the parquet file is missing.
        ValueError: If required columns are absent.
    """
    path = data_dir / OBSERVATIONS_SUBDIR / f"{table}.parquet"
    if not path.exists():
        msg = f"Observation table {table!r} not found at {path}"
        raise FileNotFoundError(msg)

    df = pl.read_parquet(path)
    missing = [c for c in OBSERVATION_COLUMNS if c not in df.columns]
    if missing:
        msg = f"Observation table {table!r} is missing columns: {missing}"
        raise ValueError(msg)
    return df


def load_idata(spec: ModelSpec, data_dir: Path = DATA_DIR) -> az.InferenceData:
    """Read the InferenceData for one registry entry."""
    path = data_dir / MODELS_SUBDIR / spec.idata_filename
    if not path.exists():
        msg = f"Fitted model {spec.model_id!r} not found at {path}"
        raise FileNotFoundError(msg)

    idata = az.from_netcdf(path)
    if "posterior" not in idata.groups():
        msg = f"Fitted model {spec.model_id!r} has no posterior group ({path})"
        raise ValueError(msg)
    return idata


def load_models(
    specs: list[ModelSpec] | tuple[ModelSpec, ...],
    data_dir: Path = DATA_DIR,
) -> dict[str, FittedModel]:
    """Load every model in *specs*, reading each observation table once.

    Returns ``{model_id: FittedModel}`` in the order given.
    """
    tables: dict[str, pl.DataFrame] = {}
    models: dict[str, FittedModel] = {}

    for spec in specs:
        if spec.observations not in tables:
            tables[spec.observations] = load_observations(spec.observations, data_dir)
            print(
                f"  Observations {spec.observations}: "
                f"{tables[spec.observations].height} rows"
            )
        idata = load_idata(spec, data_dir)
        posterior = idata.posterior
        n_draws = posterior.sizes["chain"] * posterior.sizes["draw"]
        print(
            f"  {spec.model_id}: {posterior.attrs.get('family', '?')} family, "
            f"{n_draws} posterior draws"
        )
        models[spec.model_id] = FittedModel(
            spec=spec,
            idata=idata,
            observations=tables[spec.observations],
        )

    return models
