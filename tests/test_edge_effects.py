"""
Tests for the edge-effect curve computations in analysis/01_edge_effects.

Covers grid sweeps, within-draw marginalization, truncation to the sampled
distance range, interval summaries, and an end-to-end family run against
synthetic models written into a temporary results tree.

Run: uv run pytest tests/test_edge_effects.py -v
"""

import argparse
import json
import math
import sys
from pathlib import Path

import numpy as np
import polars as pl
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from analysis.edge_effects import plot_response_curves, process_family
from analysis.edge_effects_data import (
    attach_max_distance,
    build_distance_grid,
    build_effort_grid,
    check_balanced,
    distance_scaling,
    group_levels,
    marginalize_draws,
    max_distance_by_group,
    mean_log_trap_days,
    predict_draws,
    rug_records,
    summarize_intervals,
    sweep_values,
    truncate_curves,
    values_at,
)
from analysis.edge_effects_report import build_edge_effects_report
from analysis.run_context import RunContext
from conftest import (
    DEFAULT_TERMS,
    TRAP_DISTANCES,
    VEGETABLE_MAX_DIST,
    make_fitted_model,
    make_idata,
    make_observations,
)

from fieldedge.config import CROP_TYPES, HABITAT_TYPES


def _draws(rows: list[tuple[str, float, str, str, int, float]]) -> pl.DataFrame:
    """Hand-built draw table: (model, distance, crop, habitat, draw, epred)."""
    return pl.DataFrame(
        rows,
        schema=["model", "distance", "crop", "habitat", "draw", "epred"],
        orient="row",
    )


# ── sweep_values() ───────────────────────────────────────────────────────────


class TestSweepValues:
    """Fixed-step sweeps always end exactly at the upper bound."""

    def test_exact_multiple(self):
        np.testing.assert_array_equal(sweep_values(0, 50, 25), [0.0, 25.0, 50.0])

    def test_float_noise_snaps_to_upper_bound(self):
        values = sweep_values(0, 0.3, 0.1)
        assert len(values) == 4
        assert values[-1] == 0.3

    def test_partial_last_step_appends_upper_bound(self):
        np.testing.assert_array_equal(sweep_values(0, 60, 25), [0.0, 25.0, 50.0, 60.0])

    def test_single_point(self):
        np.testing.assert_array_equal(sweep_values(5, 5, 1), [5.0])

    def test_values_not_accumulated(self):
        values = sweep_values(0, 50, 0.1)
        assert len(values) == 501
        assert values[-1] == 50.0
        np.testing.assert_allclose(np.diff(values), 0.1)

    def test_nonpositive_step_raises(self):
        with pytest.raises(ValueError, match="positive"):
            sweep_values(0, 10, 0)

    def test_inverted_bounds_raise(self):
        with pytest.raises(ValueError, match="below lower bound"):
            sweep_values(10, 0, 1)


# ── Grid construction ────────────────────────────────────────────────────────


class TestDistanceGrid:
    """Distance sweep crossed with every crop and habitat."""

    def test_size(self, fitted_model):
        grid = build_distance_grid(fitted_model)
        n_dist = int(max(TRAP_DISTANCES)) + 1
        assert grid.height == n_dist * len(CROP_TYPES) * len(HABITAT_TYPES)

    def test_covers_observed_range(self, fitted_model):
        grid = build_distance_grid(fitted_model)
        assert grid["distance"].min() == min(TRAP_DISTANCES)
        assert grid["distance"].max() == max(TRAP_DISTANCES)

    def test_full_crossing(self, fitted_model):
        grid = build_distance_grid(fitted_model, step=25)
        combos = grid.group_by("distance").agg(pl.len())
        assert combos["len"].to_list() == [15, 15, 15]
        assert set(grid["crop"].unique().to_list()) == set(CROP_TYPES)
        assert set(grid["habitat"].unique().to_list()) == set(HABITAT_TYPES)

    def test_trap_days_held_at_mean_log(self, fitted_model):
        grid = build_distance_grid(fitted_model, step=25)
        expected = mean_log_trap_days(fitted_model.observations)
        np.testing.assert_allclose(grid["log_trap_days"].to_numpy(), expected)
        np.testing.assert_allclose(grid["trap_days"].to_numpy(), np.exp(expected))

    def test_mean_log_trap_days_value(self, observations):
        # Every crop/habitat cell has equal s1 (7 d) and s2 (14 d) rows
        np.testing.assert_allclose(
            mean_log_trap_days(observations), (np.log(7.0) + np.log(14.0)) / 2
        )

    def test_nonpositive_trap_days_raise(self, observations):
        bad = observations.with_columns(pl.lit(0.0).alias("trap_days"))
        with pytest.raises(ValueError, match="positive"):
            mean_log_trap_days(bad)

    def test_scaling_from_observations(self, fitted_model):
        center, scale = distance_scaling(fitted_model)
        dist = fitted_model.observations["distance"]
        assert center == pytest.approx(dist.mean())
        assert scale == pytest.approx(dist.std(ddof=1))

    def test_scaling_from_attrs(self):
        idata = make_idata({}, attrs={"distance_center": 10.0, "distance_scale": 5.0})
        model = make_fitted_model(idata)
        assert distance_scaling(model) == (10.0, 5.0)
        grid = build_distance_grid(model, step=10)
        row = grid.filter(pl.col("distance") == 20.0).row(0, named=True)
        assert row["dist_scaled"] == pytest.approx(2.0)


class TestEffortGrid:
    """Trap-days sweep at a fixed distance."""

    def test_size_and_range(self, fitted_model):
        grid = build_effort_grid(fitted_model)
        assert grid["trap_days"].min() == 7.0
        assert grid["trap_days"].max() == 14.0
        assert grid.height == 8 * len(CROP_TYPES) * len(HABITAT_TYPES)

    def test_log_column(self, fitted_model):
        grid = build_effort_grid(fitted_model)
        np.testing.assert_allclose(grid["log_trap_days"].to_numpy(), np.log(grid["trap_days"]))

    def test_default_distance_is_center(self, fitted_model):
        grid = build_effort_grid(fitted_model)
        center, _ = distance_scaling(fitted_model)
        np.testing.assert_allclose(grid["distance"].to_numpy(), center)
        np.testing.assert_allclose(grid["dist_scaled"].to_numpy(), 0.0, atol=1e-12)

    def test_fixed_distance(self, fitted_model):
        grid = build_effort_grid(fitted_model, distance=0.0)
        assert grid["distance"].unique().to_list() == [0.0]
        assert (grid["dist_scaled"] < 0).all()


class TestGroupLevels:
    """Observed study/site combinations crossed into the grids."""

    def test_observed_study_levels(self, noisy_model):
        levels = group_levels(noisy_model)
        assert levels.columns == ["study"]
        assert levels["study"].to_list() == ["s1", "s2"]

    def test_no_group_effects(self, fitted_model):
        assert group_levels(fitted_model) is None
        plain = build_distance_grid(fitted_model, step=25)
        assert build_distance_grid(fitted_model, step=25, include_groups=True).equals(plain)

    def test_fitted_levels_when_column_unobserved(self):
        idata = make_idata(DEFAULT_TERMS, groups={"region": {"north": 0.1, "south": -0.1}})
        levels = group_levels(make_fitted_model(idata))
        assert levels["region"].to_list() == ["north", "south"]

    def test_distance_grid_crosses_studies(self, noisy_model):
        grid = build_distance_grid(noisy_model, step=25, include_groups=True)
        assert "study" in grid.columns
        assert grid.height == 3 * len(CROP_TYPES) * len(HABITAT_TYPES) * 2
        per_study = grid.group_by("study").agg(pl.len())
        assert per_study["len"].to_list() == [45, 45]

    def test_effort_grid_crosses_studies(self, noisy_model):
        grid = build_effort_grid(noisy_model, include_groups=True)
        assert grid.height == 8 * len(CROP_TYPES) * len(HABITAT_TYPES) * 2
        assert sorted(grid["study"].unique().to_list()) == ["s1", "s2"]


# ── predict_draws() ──────────────────────────────────────────────────────────


class TestPredictDraws:
    """Stacked draws for several models."""

    def test_stacks_models(self):
        models = {
            "richness_all": make_fitted_model(spec_index=0),
            "richness_predatory": make_fitted_model(spec_index=1),
        }
        draws = predict_draws(models, lambda m: build_distance_grid(m, step=25), ndraws=5)
        assert set(draws["model"].unique().to_list()) == set(models)
        assert draws.height == 2 * 45 * 5


# ── marginalize_draws() ──────────────────────────────────────────────────────


class TestMarginalizeDraws:
    """Nuisance covariates collapse within each draw."""

    def test_two_level_average(self):
        draws = _draws(
            [
                ("m", 25.0, "A", "control", 0, 2.0),
                ("m", 25.0, "B", "control", 0, 4.0),
            ]
        )
        curves = marginalize_draws(draws)
        assert curves.height == 1
        assert curves["epred"][0] == pytest.approx(3.0)

    def test_average_never_crosses_draws(self):
        draws = _draws(
            [
                ("m", 0.0, "A", "control", 0, 1.0),
                ("m", 0.0, "B", "control", 0, 3.0),
                ("m", 0.0, "A", "control", 1, 10.0),
                ("m", 0.0, "B", "control", 1, 30.0),
            ]
        )
        curves = marginalize_draws(draws)
        assert curves.sort("draw")["epred"].to_list() == [2.0, 20.0]

    def test_grouped_keeps_group_column(self):
        draws = _draws(
            [
                ("m", 0.0, "A", "control", 0, 1.0),
                ("m", 0.0, "A", "woody", 0, 3.0),
                ("m", 0.0, "B", "control", 0, 5.0),
                ("m", 0.0, "B", "woody", 0, 7.0),
            ]
        )
        curves = marginalize_draws(draws, "crop")
        assert curves.columns == ["model", "distance", "crop", "draw", "epred"]
        assert curves.sort("crop")["epred"].to_list() == [2.0, 6.0]

    def test_models_not_mixed(self):
        draws = _draws(
            [
                ("m1", 0.0, "A", "control", 0, 1.0),
                ("m2", 0.0, "A", "control", 0, 9.0),
            ]
        )
        curves = marginalize_draws(draws)
        assert curves.height == 2

    def test_unbalanced_grid_raises(self):
        draws = _draws(
            [
                ("m", 0.0, "A", "control", 0, 1.0),
                ("m", 0.0, "B", "control", 0, 3.0),
                ("m", 5.0, "A", "control", 0, 1.0),
            ]
        )
        with pytest.raises(ValueError, match="Unbalanced"):
            marginalize_draws(draws)

    def test_check_balanced_passes_on_product(self, fitted_model):
        grid = build_distance_grid(fitted_model, step=25)
        draws = predict_draws({"richness_all": fitted_model}, lambda m: grid, ndraws=3)
        check_balanced(draws, ["model", "distance", "draw"])

    def test_reference_policy(self):
        draws = _draws(
            [
                ("m", 0.0, "Cereal", "control", 0, 1.0),
                ("m", 0.0, "Cereal", "woody", 0, 2.0),
                ("m", 0.0, "Maize", "control", 0, 3.0),
                ("m", 0.0, "Maize", "woody", 0, 4.0),
            ]
        )
        overall = marginalize_draws(draws, policy="reference")
        assert overall["epred"].to_list() == [1.0]
        by_crop = marginalize_draws(draws, "crop", policy="reference")
        assert by_crop.sort("crop")["epred"].to_list() == [1.0, 3.0]

    def test_raw_policy_pools_rows(self):
        draws = _draws(
            [
                ("m", 0.0, "A", "control", 0, 1.0),
                ("m", 0.0, "B", "control", 0, 3.0),
            ]
        )
        curves = marginalize_draws(draws, policy="raw")
        assert curves.height == 2
        assert sorted(curves["epred"].to_list()) == [1.0, 3.0]

    def test_unknown_policy_raises(self):
        draws = _draws([("m", 0.0, "A", "control", 0, 1.0)])
        with pytest.raises(ValueError, match="marginalization policy"):
            marginalize_draws(draws, policy="weighted")

    def test_unknown_grouping_raises(self):
        draws = _draws([("m", 0.0, "A", "control", 0, 1.0)])
        with pytest.raises(ValueError, match="grouping key"):
            marginalize_draws(draws, "study")

    def test_group_rows_averaged_within_draw(self, noisy_model):
        models = {"richness_all": noisy_model}
        plain = predict_draws(models, lambda m: build_distance_grid(m, step=25))
        grouped = predict_draws(
            models,
            lambda m: build_distance_grid(m, step=25, include_groups=True),
            include_group_effects=True,
        )
        base = marginalize_draws(plain)
        with_groups = marginalize_draws(grouped)
        assert with_groups.height == base.height
        # Study offsets of +/-0.2 on the log scale average to cosh(0.2)
        np.testing.assert_allclose(
            with_groups["epred"].to_numpy(), base["epred"].to_numpy() * math.cosh(0.2)
        )

    def test_reference_policy_averages_group_rows(self):
        draws = _draws(
            [
                ("m", 0.0, "Cereal", "control", 0, 1.0),
                ("m", 0.0, "Cereal", "control", 0, 3.0),
                ("m", 0.0, "Maize", "control", 0, 9.0),
                ("m", 0.0, "Maize", "control", 0, 9.0),
            ]
        ).with_columns(pl.Series("study", ["s1", "s2", "s1", "s2"]))
        curves = marginalize_draws(draws, policy="reference")
        assert curves["epred"].to_list() == [2.0]


# ── Truncation ───────────────────────────────────────────────────────────────


class TestTruncation:
    """Curves stop at the furthest distance sampled per group."""

    def test_max_distance_overall(self, observations):
        md = max_distance_by_group({"m": observations})
        assert md.columns == ["model", "max_dist"]
        assert md["max_dist"].to_list() == [max(TRAP_DISTANCES)]

    def test_max_distance_by_crop(self, observations):
        md = max_distance_by_group({"m": observations}, "crop")
        lookup = dict(zip(md["crop"].to_list(), md["max_dist"].to_list(), strict=True))
        assert lookup["Vegetable"] == VEGETABLE_MAX_DIST
        assert lookup["Cereal"] == max(TRAP_DISTANCES)

    def test_truncated_curves_respect_group_range(self, fitted_model):
        draws = predict_draws(
            {"richness_all": fitted_model},
            lambda m: build_distance_grid(m, step=5),
            ndraws=4,
        )
        curves = marginalize_draws(draws, "crop")
        md = max_distance_by_group({"richness_all": fitted_model.observations}, "crop")
        curves = truncate_curves(attach_max_distance(curves, md, "crop"))

        assert (curves["distance"] <= curves["max_dist"]).all()
        veg = curves.filter(pl.col("crop") == "Vegetable")
        assert veg["distance"].max() == VEGETABLE_MAX_DIST
        cereal = curves.filter(pl.col("crop") == "Cereal")
        assert cereal["distance"].max() == max(TRAP_DISTANCES)

    def test_unsampled_group_dropped(self):
        obs = make_observations().filter(pl.col("habitat") != "woody")
        draws = _draws(
            [
                ("m", 0.0, "Cereal", "control", 0, 1.0),
                ("m", 0.0, "Cereal", "woody", 0, 2.0),
            ]
        )
        curves = marginalize_draws(draws, "habitat")
        md = max_distance_by_group({"m": obs}, "habitat")
        joined = attach_max_distance(curves, md, "habitat")
        assert joined.filter(pl.col("habitat") == "woody")["max_dist"].is_null().all()
        assert truncate_curves(joined)["habitat"].to_list() == ["control"]


# ── summarize_intervals() ────────────────────────────────────────────────────


class TestSummarizeIntervals:
    """Median and nested credible intervals per x value."""

    @pytest.fixture
    def curves(self, noisy_model) -> pl.DataFrame:
        draws = predict_draws(
            {"richness_all": noisy_model}, lambda m: build_distance_grid(m, step=25)
        )
        return marginalize_draws(draws)

    def test_long_format(self, curves):
        summary = summarize_intervals(curves)
        assert summary.columns == ["model", "distance", "median", "width", "lower", "upper"]
        assert summary.height == 3 * 3
        assert sorted(summary["width"].unique().to_list()) == [0.5, 0.8, 0.95]

    def test_qi_nested(self, curves):
        summary = summarize_intervals(curves, method="qi")
        for d in summary["distance"].unique().to_list():
            rows = summary.filter(pl.col("distance") == d).sort("width")
            lower = rows["lower"].to_list()
            upper = rows["upper"].to_list()
            median = rows["median"][0]
            assert lower[2] <= lower[1] <= lower[0] <= median
            assert median <= upper[0] <= upper[1] <= upper[2]

    def test_hdi_widens_with_width(self, curves):
        summary = summarize_intervals(curves, method="hdi")
        for d in summary["distance"].unique().to_list():
            rows = summary.filter(pl.col("distance") == d).sort("width")
            lengths = (rows["upper"] - rows["lower"]).to_list()
            assert all(v >= 0 for v in lengths)
            assert lengths[0] <= lengths[1] <= lengths[2]

    def test_constant_draws_collapse(self, fitted_model):
        draws = predict_draws(
            {"richness_all": fitted_model}, lambda m: build_distance_grid(m, step=25)
        )
        summary = summarize_intervals(marginalize_draws(draws))
        np.testing.assert_allclose(summary["lower"].to_numpy(), summary["median"].to_numpy())
        np.testing.assert_allclose(summary["upper"].to_numpy(), summary["median"].to_numpy())

    def test_grouped(self, noisy_model):
        draws = predict_draws(
            {"richness_all": noisy_model}, lambda m: build_distance_grid(m, step=25)
        )
        summary = summarize_intervals(marginalize_draws(draws, "habitat"), "habitat")
        assert "habitat" in summary.columns
        assert summary.height == 3 * len(HABITAT_TYPES) * 3

    def test_unknown_method_raises(self, curves):
        with pytest.raises(ValueError, match="interval method"):
            summarize_intervals(curves, method="eti")

    @pytest.mark.parametrize("method", ["qi", "hdi"])
    def test_empty_curves(self, method):
        empty = pl.DataFrame(
            schema={
                "model": pl.Utf8,
                "distance": pl.Float64,
                "draw": pl.Int64,
                "epred": pl.Float64,
            }
        )
        summary = summarize_intervals(empty, method=method)
        assert summary.height == 0
        assert summary.columns == ["model", "distance", "median", "width", "lower", "upper"]


class TestValuesAt:
    """Nearest-grid lookups for report tables."""

    def test_targets_in_range(self, fitted_model):
        draws = predict_draws(
            {"richness_all": fitted_model}, lambda m: build_distance_grid(m, step=1)
        )
        summary = summarize_intervals(marginalize_draws(draws))
        rows = values_at(summary, (0.0, 25.0, 50.0, 100.0))
        assert rows["distance"].to_list() == [0.0, 25.0, 50.0]
        assert (rows["width"] == 0.95).all()

    def test_empty_summary(self):
        empty = pl.DataFrame(
            schema={
                "model": pl.Utf8,
                "distance": pl.Float64,
                "median": pl.Float64,
                "width": pl.Float64,
                "lower": pl.Float64,
                "upper": pl.Float64,
            }
        )
        assert values_at(empty, (0.0,)).height == 0


class TestRugRecords:
    """Distinct observed positions per model."""

    def test_distinct_and_sorted(self, observations):
        rug = rug_records({"m": observations})
        assert rug.columns == ["model", "crop", "habitat", "distance"]
        n_full = (len(CROP_TYPES) - 1) * len(HABITAT_TYPES) * len(TRAP_DISTANCES)
        n_veg = len(HABITAT_TYPES) * sum(1 for d in TRAP_DISTANCES if d <= VEGETABLE_MAX_DIST)
        assert rug.height == n_full + n_veg
        assert rug.equals(rug.sort("model", "crop", "habitat", "distance"))

    def test_trap_days_axis(self, observations):
        rug = rug_records({"m": observations}, x="trap_days")
        assert sorted(rug["trap_days"].unique().to_list()) == [7.0, 14.0]


# ── Plotting ─────────────────────────────────────────────────────────────────


class TestPlotResponseCurves:
    """Faceted ribbon plots written to disk."""

    def test_writes_png(self, tmp_path, noisy_model):
        draws = predict_draws(
            {"richness_all": noisy_model}, lambda m: build_distance_grid(m, step=5)
        )
        curves = marginalize_draws(draws, "crop")
        md = max_distance_by_group({"richness_all": noisy_model.observations}, "crop")
        curves = truncate_curves(attach_max_distance(curves, md, "crop"))
        summary = summarize_intervals(curves, "crop")
        out = tmp_path / "curves.png"
        plot_response_curves(
            summary,
            rug_records({"richness_all": noisy_model.observations}),
            by="crop",
            model_labels={"richness_all": "All species"},
            title="Richness",
            ylabel="Expected species richness",
            color="#2E7D32",
            out_path=out,
        )
        assert out.exists()
        assert out.stat().st_size > 0

    def test_empty_summary_skips(self, tmp_path, observations):
        out = tmp_path / "empty.png"
        plot_response_curves(
            pl.DataFrame(),
            rug_records({"m": observations}),
            by=None,
            model_labels={"m": "M"},
            title="Empty",
            ylabel="y",
            color="#000000",
            out_path=out,
        )
        assert not out.exists()


# ── End-to-end family run ────────────────────────────────────────────────────


class TestProcessFamily:
    """Distance and effort curves for one family inside a RunContext."""

    @pytest.fixture
    def args(self) -> argparse.Namespace:
        return argparse.Namespace(
            include_group_effects=False,
            strict_levels=False,
            ndraws=10,
            seed=1,
            dist_step=5.0,
            effort_step=1.0,
            effort_distance=None,
            marginalization="average",
            interval_method="qi",
        )

    @pytest.fixture
    def models(self, noisy_model) -> dict:
        second = make_fitted_model(noisy_model.idata, spec_index=1)
        return {"richness_all": noisy_model, "richness_predatory": second}

    def test_outputs(self, tmp_path, args, models):
        with RunContext(
            dataset="test", analysis_name="01_edge_effects", results_root=tmp_path
        ) as ctx:
            res = process_family("richness", models, args, ctx)

        for name in ("overall", "crop", "habitat"):
            assert (ctx.data_dir / f"intervals_richness_{name}.parquet").exists()
            assert (ctx.plots_dir / f"curves_richness_{name}.png").exists()
        assert (ctx.data_dir / "effort_richness.parquet").exists()
        assert (ctx.plots_dir / "effort_richness.png").exists()
        assert res["n_draw_rows"] == 2 * 11 * 15 * 10

    def test_group_effects(self, tmp_path, args, noisy_model):
        args.include_group_effects = True
        with RunContext(
            dataset="test", analysis_name="01_edge_effects", results_root=tmp_path
        ) as ctx:
            res = process_family("richness", {"richness_all": noisy_model}, args, ctx)

        assert not ctx.failed
        assert (ctx.data_dir / "intervals_richness_overall.parquet").exists()
        assert (ctx.plots_dir / "effort_richness.png").exists()
        assert res["n_draw_rows"] == 11 * 15 * 2 * 10
        overall = res["summaries"]["overall"]
        assert "study" not in overall.columns
        crop = res["summaries"]["crop"]
        assert crop.filter(pl.col("crop") == "Vegetable")["distance"].max() == VEGETABLE_MAX_DIST

    def test_crop_curves_truncated(self, tmp_path, args, models):
        with RunContext(
            dataset="test", analysis_name="01_edge_effects", results_root=tmp_path
        ) as ctx:
            res = process_family("richness", models, args, ctx)

        crop = res["summaries"]["crop"]
        veg = crop.filter(pl.col("crop") == "Vegetable")
        assert veg["distance"].max() == VEGETABLE_MAX_DIST
        assert crop.filter(pl.col("crop") == "Maize")["distance"].max() == max(TRAP_DISTANCES)

    def test_seeded_run_reproducible(self, tmp_path, args, models):
        results = []
        for label in ("a", "b"):
            with RunContext(
                dataset=label, analysis_name="01_edge_effects", results_root=tmp_path
            ) as ctx:
                results.append(process_family("richness", models, args, ctx))
        assert results[0]["summaries"]["overall"].equals(results[1]["summaries"]["overall"])

    def test_report_written(self, tmp_path, args, models):
        with RunContext(
            dataset="test", analysis_name="01_edge_effects", results_root=tmp_path
        ) as ctx:
            res = process_family("richness", models, args, ctx)
            build_edge_effects_report(
                ctx.report,
                family_results={"richness": res},
                marginalization="average",
                interval_method="qi",
                params=vars(args),
            )

        html_path = ctx.run_dir / "01_edge_effects_report.html"
        assert html_path.exists()
        html = html_path.read_text()
        assert "Species richness: Grand Mean" in html
        assert "Analysis Parameters" in html
        assert (tmp_path / "test" / "01_edge_effects" / "latest").is_symlink()
        info = json.loads((ctx.run_dir / "run_info.json").read_text())
        assert info["status"] == "ok"
