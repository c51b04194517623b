"""
Tests for control sampling strategies.
"""

import numpy as np
import pandas as pd
import pytest

from casecontrol_sim import (
    ProbabilityWeightedSampler,
    SimpleRandomSampler,
    SingleStageClusterSampler,
    StratifiedSampler,
    TwoStageClusterSampler,
    allocate_proportional,
    get_sampler,
    normalize_scheme,
)
from casecontrol_sim.exceptions import (
    ConfigurationError,
    DataSufficiencyError,
    UnsupportedSchemeError,
)


def _weight_totals(sampler, controls, target, seeds):
    return np.array([
        sampler.select(controls, target, np.random.default_rng(s))[1].sum()
        for s in seeds
    ])


class TestSimpleRandomSampler:
    """Test cases for equal-probability sampling."""

    def test_exact_count_and_weights(self, controls):
        selected, weights = SimpleRandomSampler().select(
            controls, 2000, np.random.default_rng(1)
        )
        assert len(selected) == 2000
        assert selected.index.is_unique
        assert selected.index.isin(controls.index).all()
        np.testing.assert_allclose(weights, len(controls) / 2000)
        assert weights.sum() == pytest.approx(len(controls))

    def test_reproducible(self, controls):
        first, _ = SimpleRandomSampler().select(
            controls, 500, np.random.default_rng(3)
        )
        second, _ = SimpleRandomSampler().select(
            controls, 500, np.random.default_rng(3)
        )
        pd.testing.assert_frame_equal(first, second)

    def test_all_controls(self, controls):
        selected, weights = SimpleRandomSampler().select(
            controls, len(controls), np.random.default_rng(1)
        )
        assert len(selected) == len(controls)
        np.testing.assert_allclose(weights, 1.0)

    def test_over_request_raises(self, controls):
        with pytest.raises(DataSufficiencyError):
            SimpleRandomSampler().select(
                controls, len(controls) + 1, np.random.default_rng(1)
            )

    def test_does_not_modify_controls(self, controls):
        before = controls.copy()
        SimpleRandomSampler().select(controls, 100, np.random.default_rng(1))
        pd.testing.assert_frame_equal(controls, before)


class TestProbabilityWeightedSampler:
    """Test cases for unequal-probability sampling."""

    def test_count_and_weights(self, controls):
        selected, weights = ProbabilityWeightedSampler().select(
            controls, 2000, np.random.default_rng(1)
        )
        assert len(selected) == 2000
        assert selected.index.is_unique
        assert (weights >= 1.0).all()
        assert weights.std() > 0

    def test_weight_total_near_population(self, controls):
        totals = _weight_totals(
            ProbabilityWeightedSampler(), controls, 2000, range(10)
        )
        assert np.median(totals) == pytest.approx(len(controls), rel=0.15)


class TestSingleStageClusterSampler:
    """Test cases for single-stage PPS cluster sampling."""

    def test_whole_clusters_included(self, controls):
        selected, weights = SingleStageClusterSampler("cluster").select(
            controls, 2000, np.random.default_rng(1)
        )
        drawn = selected["cluster"].unique()
        sizes = controls["cluster"].value_counts()
        expected_clusters = int(round(2000 / sizes.mean() / 2))

        assert len(drawn) == expected_clusters
        np.testing.assert_array_equal(
            selected["cluster"].value_counts()[drawn].to_numpy(),
            sizes[drawn].to_numpy(),
        )
        assert len(weights) == len(selected)

    def test_weights_constant_within_cluster(self, controls):
        selected, weights = SingleStageClusterSampler("cluster").select(
            controls, 2000, np.random.default_rng(2)
        )
        spread = pd.Series(weights, index=selected.index).groupby(
            selected["cluster"]
        ).nunique()
        assert (spread == 1).all()

        sizes = controls["cluster"].value_counts()
        k = selected["cluster"].nunique()
        expected = 1.0 / np.minimum(
            1.0, k * sizes[selected["cluster"]] / len(controls)
        )
        np.testing.assert_allclose(weights, expected.to_numpy())

    def test_weight_total_near_population(self, controls):
        totals = _weight_totals(
            SingleStageClusterSampler("cluster"), controls, 2000, range(10)
        )
        assert np.median(totals) == pytest.approx(len(controls), rel=0.25)

    def test_calibrate_uses_whole_population(self, population, controls):
        sampler = SingleStageClusterSampler("cluster")
        sampler.calibrate(population)
        mean_size = population["cluster"].value_counts().mean()
        assert sampler.mean_cluster_size == pytest.approx(mean_size)

        selected, _ = sampler.select(controls, 2000, np.random.default_rng(1))
        expected_clusters = int(round(2000 / mean_size / 2))
        assert selected["cluster"].nunique() == expected_clusters

    def test_unknown_column(self, controls):
        with pytest.raises(ConfigurationError):
            SingleStageClusterSampler("household").select(
                controls, 2000, np.random.default_rng(1)
            )

    def test_too_few_controls_requested(self, controls):
        with pytest.raises(DataSufficiencyError):
            SingleStageClusterSampler("cluster").select(
                controls, 2, np.random.default_rng(1)
            )


class TestTwoStageClusterSampler:
    """Test cases for two-stage cluster sampling."""

    def test_fixed_size_and_per_cluster(self, controls):
        sampler = TwoStageClusterSampler("puma", n_clusters=10, per_cluster=50)
        selected, weights = sampler.select(
            controls, 123, np.random.default_rng(1)
        )
        assert len(selected) == 500
        assert selected.index.is_unique
        counts = selected["puma"].value_counts()
        assert len(counts) == 10
        assert (counts == 50).all()

    def test_self_weighting(self, controls):
        sampler = TwoStageClusterSampler("puma", n_clusters=10, per_cluster=50)
        _, weights = sampler.select(controls, 0, np.random.default_rng(2))
        np.testing.assert_allclose(weights, len(controls) / 500)
        assert weights.sum() == pytest.approx(len(controls))

    def test_too_many_clusters(self, controls):
        n_pumas = controls["puma"].nunique()
        sampler = TwoStageClusterSampler("puma", n_clusters=n_pumas + 1)
        with pytest.raises(DataSufficiencyError):
            sampler.select(controls, 0, np.random.default_rng(1))

    def test_cluster_too_small(self, controls):
        sampler = TwoStageClusterSampler(
            "puma", n_clusters=5, per_cluster=len(controls)
        )
        with pytest.raises(DataSufficiencyError, match="fewer than"):
            sampler.select(controls, 0, np.random.default_rng(1))

    def test_invalid_sizes(self):
        with pytest.raises(ConfigurationError):
            TwoStageClusterSampler(n_clusters=0)


class TestStratifiedSampler:
    """Test cases for proportionally allocated stratified sampling."""

    def test_strata_non_empty(self, controls):
        strata, n_levels = StratifiedSampler("county").assign_strata(controls)
        assert 2 <= n_levels <= 10
        assert len(strata) == len(controls)
        assert (np.bincount(strata, minlength=n_levels) > 0).all()

    def test_allocation_and_weights(self, controls):
        sampler = StratifiedSampler("county", n_strata=10)
        strata, n_levels = sampler.assign_strata(controls)
        sizes = np.bincount(strata, minlength=n_levels)

        selected, weights = sampler.select(
            controls, 2001, np.random.default_rng(1)
        )
        allocation = allocate_proportional(sizes, 2001)
        assert len(selected) == 2001
        assert weights.sum() == pytest.approx(sizes[allocation > 0].sum())

        chosen_strata = pd.Series(strata, index=controls.index)[selected.index]
        counts = chosen_strata.value_counts().sort_index()
        np.testing.assert_array_equal(
            counts.to_numpy(), allocation[allocation > 0]
        )
        expected = sizes[chosen_strata.to_numpy()] / allocation[
            chosen_strata.to_numpy()
        ]
        np.testing.assert_allclose(weights, expected)

    def test_single_value_column(self, controls):
        frame = controls.assign(county=5)
        with pytest.raises(DataSufficiencyError):
            StratifiedSampler("county").select(
                frame, 100, np.random.default_rng(1)
            )

    def test_unknown_column(self, controls):
        with pytest.raises(ConfigurationError):
            StratifiedSampler("state").assign_strata(controls)


class TestAllocateProportional:
    """Test cases for largest-remainder allocation."""

    def test_known_allocation(self):
        np.testing.assert_array_equal(
            allocate_proportional(np.array([50, 30, 20]), 7), [4, 2, 1]
        )

    @pytest.mark.parametrize("total", [0, 1, 9, 10, 97, 1000])
    def test_sums_to_total(self, total):
        sizes = np.array([123, 7, 55, 310, 1, 4])
        allocation = allocate_proportional(sizes, total)
        assert allocation.sum() == total
        assert (allocation >= 0).all()

    def test_exact_shares_unchanged(self):
        np.testing.assert_array_equal(
            allocate_proportional(np.array([2, 2, 4]), 4), [1, 1, 2]
        )


class TestSchemeRegistry:
    """Test cases for scheme lookup."""

    @pytest.mark.parametrize(
        "name, expected",
        [
            ("srs", "srs"),
            ("clustered1", "clustered_single_stage"),
            ("clustered2", "clustered_two_stage"),
            ("stratified", "stratified"),
        ],
    )
    def test_normalize(self, name, expected):
        assert normalize_scheme(name) == expected

    @pytest.mark.parametrize("name", ["ACS", "NHANES", "acs"])
    def test_reserved(self, name):
        with pytest.raises(UnsupportedSchemeError):
            normalize_scheme(name)

    def test_reserved_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            normalize_scheme("NHANES")

    def test_unknown(self):
        with pytest.raises(ConfigurationError, match="Unknown"):
            normalize_scheme("systematic")

    def test_get_sampler_options(self):
        sampler = get_sampler("clustered2", n_clusters=5, per_cluster=7)
        assert isinstance(sampler, TwoStageClusterSampler)
        assert (sampler.n_clusters, sampler.per_cluster) == (5, 7)

    def test_get_sampler_bad_options(self):
        with pytest.raises(ConfigurationError):
            get_sampler("srs", n_clusters=5)
