"""
Control sampling strategies for case-control studies.

Each sampler draws controls from the non-case population and returns the
selected rows together with design weights. Weights are inverse inclusion
probabilities, so that the weighted control sample represents the full
control population:

    sum(weights) ~= number of controls in the population

The samplers mirror common survey designs: simple random sampling, unequal
probability sampling, single- and two-stage cluster sampling with clusters
drawn proportional to size, and proportionally allocated stratified
sampling.
"""

from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple, Type

import numpy as np
import pandas as pd

from utils.logging import log_call

from .exceptions import (
    ConfigurationError,
    DataSufficiencyError,
    UnsupportedSchemeError,
)

SAMPLING_SCHEMES = (
    "srs",
    "sps",
    "clustered_single_stage",
    "clustered_two_stage",
    "stratified",
)
SCHEME_ALIASES = {
    "clustered1": "clustered_single_stage",
    "clustered2": "clustered_two_stage",
}
# Survey-specific designs that have no implementation yet
RESERVED_SCHEMES = ("ACS", "NHANES")

Selection = Tuple[pd.DataFrame, np.ndarray]


def _require(requested: int, available: int, group: str) -> None:
    if requested < 1:
        raise DataSufficiencyError(
            f"{group}: at least one unit must be requested, got {requested}"
        )
    if requested > available:
        raise DataSufficiencyError(
            f"{group}: requested {requested} units but only "
            f"{available} are available"
        )


def _cluster_sizes(controls: pd.DataFrame, column: str) -> pd.Series:
    if column not in controls.columns:
        raise ConfigurationError(f"Unknown cluster column '{column}'")
    return controls.groupby(column, sort=True).size()


def _pps_clusters(
    sizes: pd.Series,
    n_clusters: int,
    rng: np.random.Generator
) -> Tuple[np.ndarray, pd.Series]:
    """
    Draw clusters without replacement with probability proportional to
    size. Returns the drawn ids (sorted) and every cluster's approximate
    first-order inclusion probability ``min(1, k * M_c / N)``.
    """
    shares = sizes / sizes.sum()
    drawn = rng.choice(
        sizes.index.to_numpy(), size=n_clusters, replace=False,
        p=shares.to_numpy(dtype=float)
    )
    inclusion = np.minimum(1.0, n_clusters * shares)
    return np.sort(drawn), inclusion


class ControlSampler(ABC):
    """Strategy interface for drawing weighted control samples."""

    name: str = ""

    @abstractmethod
    @log_call
    def select(
        self,
        controls: pd.DataFrame,
        target_count: int,
        rng: np.random.Generator
    ) -> Selection:
        """
        Draw controls from ``controls``.

        Parameters
        ----------
        controls : pd.DataFrame
            All non-cases in the population. Not modified.
        target_count : int
            Requested number of controls. Fixed-size designs may ignore it.
        rng : np.random.Generator
            Source of randomness for this draw.

        Returns
        -------
        selected : pd.DataFrame
            Sampled rows, keeping the population index.
        weights : np.ndarray
            Inverse inclusion probability for each sampled row.
        """


class SimpleRandomSampler(ControlSampler):
    """Equal-probability sample without replacement."""

    name = "srs"

    @log_call
    def select(self, controls, target_count, rng) -> Selection:
        n_total = len(controls)
        _require(target_count, n_total, "control population")
        chosen = rng.choice(n_total, size=target_count, replace=False)
        weights = np.full(target_count, n_total / target_count)
        return controls.iloc[chosen], weights


class ProbabilityWeightedSampler(ControlSampler):
    """
    Unequal-probability sample with known selection probabilities.

    Every control receives a selection propensity ``u ~ U(0, 1)``; units are
    then drawn successively without replacement with probability
    proportional to ``u``. The inclusion probability of unit i is taken as
    ``n * u_i / sum(u)`` (capped at 1).
    """

    name = "sps"

    @log_call
    def select(self, controls, target_count, rng) -> Selection:
        n_total = len(controls)
        _require(target_count, n_total, "control population")
        propensity = rng.uniform(0.0, 1.0, n_total)
        share = propensity / propensity.sum()
        chosen = rng.choice(
            n_total, size=target_count, replace=False, p=share
        )
        inclusion = np.minimum(1.0, target_count * share[chosen])
        return controls.iloc[chosen], 1.0 / inclusion


class SingleStageClusterSampler(ControlSampler):
    """
    Clusters drawn proportional to size; every control in a drawn cluster
    is included.

    The number of clusters is ``round(target / mean cluster size / 2)``, so
    the realised sample size only approximates the target. The mean cluster
    size is taken over the whole population (cases included) once
    ``calibrate`` has been called, and over the controls otherwise.
    """

    name = "clustered_single_stage"

    def __init__(
        self,
        cluster_column: str = "cluster",
        mean_cluster_size: Optional[float] = None
    ):
        self.cluster_column = cluster_column
        self.mean_cluster_size = mean_cluster_size

    @log_call
    def calibrate(self, population: pd.DataFrame) -> None:
        """Size the cluster draw from the full population."""
        sizes = _cluster_sizes(population, self.cluster_column)
        self.mean_cluster_size = float(sizes.mean())

    @log_call
    def select(self, controls, target_count, rng) -> Selection:
        column = self.cluster_column
        sizes = _cluster_sizes(controls, column)
        mean_size = self.mean_cluster_size or sizes.mean()
        n_clusters = int(round(target_count / mean_size / 2))
        _require(n_clusters, len(sizes), f"clusters of '{column}'")

        drawn, inclusion = _pps_clusters(sizes, n_clusters, rng)
        members = controls[controls[column].isin(drawn)]
        weights = 1.0 / members[column].map(inclusion).to_numpy(dtype=float)

        order = rng.permutation(len(members))
        return members.iloc[order], weights[order]


class TwoStageClusterSampler(ControlSampler):
    """
    Fixed number of clusters drawn proportional to size, then a fixed
    number of controls drawn at random within each drawn cluster.

    The design is self-weighting up to the inclusion-probability cap, and
    its total size ``n_clusters * per_cluster`` does not depend on the
    number of cases.
    """

    name = "clustered_two_stage"

    def __init__(
        self,
        cluster_column: str = "puma",
        n_clusters: int = 143,
        per_cluster: int = 143
    ):
        if n_clusters < 1 or per_cluster < 1:
            raise ConfigurationError(
                "n_clusters and per_cluster must be positive"
            )
        self.cluster_column = cluster_column
        self.n_clusters = n_clusters
        self.per_cluster = per_cluster

    @log_call
    def select(self, controls, target_count, rng) -> Selection:
        column = self.cluster_column
        sizes = _cluster_sizes(controls, column)
        _require(self.n_clusters, len(sizes), f"clusters of '{column}'")

        drawn, inclusion = _pps_clusters(sizes, self.n_clusters, rng)
        too_small = [c for c in drawn if sizes[c] < self.per_cluster]
        if too_small:
            raise DataSufficiencyError(
                f"'{column}' clusters {too_small} have fewer than "
                f"{self.per_cluster} controls"
            )

        positions = controls.groupby(column, sort=True).indices
        chosen, weights = [], []
        for cluster in drawn:
            chosen.append(
                rng.choice(
                    positions[cluster], size=self.per_cluster, replace=False
                )
            )
            within = self.per_cluster / sizes[cluster]
            weights.append(
                np.full(self.per_cluster, 1.0 / (inclusion[cluster] * within))
            )

        chosen = np.concatenate(chosen)
        weights = np.concatenate(weights)
        order = rng.permutation(len(chosen))
        return controls.iloc[chosen[order]], weights[order]


@log_call
def allocate_proportional(sizes: np.ndarray, total: int) -> np.ndarray:
    """
    Split ``total`` across strata in proportion to ``sizes``.

    Uses largest-remainder rounding so the allocations always sum to
    ``total``; ties in the remainder go to the earlier stratum.

    Examples
    --------
    >>> allocate_proportional(np.array([50, 30, 20]), 7)
    array([4, 2, 1])
    """
    sizes = np.asarray(sizes, dtype=float)
    exact = sizes / sizes.sum() * total
    allocation = np.floor(exact).astype(int)
    shortfall = int(total - allocation.sum())
    if shortfall > 0:
        remainder_order = np.argsort(-(exact - allocation), kind="stable")
        allocation[remainder_order[:shortfall]] += 1
    return allocation


class StratifiedSampler(ControlSampler):
    """
    Stratified random sample with proportional allocation.

    Strata are formed by cutting a numeric geographic variable at its
    (unique) decile boundaries, lowest boundary included. Boundaries are
    taken at observed values rather than interpolated.
    """

    name = "stratified"

    def __init__(self, stratum_column: str = "county", n_strata: int = 10):
        if n_strata < 1:
            raise ConfigurationError("n_strata must be positive")
        self.stratum_column = stratum_column
        self.n_strata = n_strata

    @log_call
    def assign_strata(self, controls: pd.DataFrame) -> Tuple[np.ndarray, int]:
        """Stratum number (0-based) of every control, and the stratum count."""
        column = self.stratum_column
        if column not in controls.columns:
            raise ConfigurationError(f"Unknown stratum column '{column}'")
        values = controls[column].astype(float)
        if values.isna().any():
            raise DataSufficiencyError(f"'{column}' has missing values")
        # Edges are observed values, so every interval holds at least one
        edges = np.unique(
            np.quantile(
                values, np.linspace(0.0, 1.0, self.n_strata + 1),
                method="lower",
            )
        )
        if len(edges) < 2:
            raise DataSufficiencyError(
                f"Cannot form strata: '{column}' takes a single value"
            )
        strata = pd.cut(values, bins=edges, include_lowest=True, labels=False)
        return np.asarray(strata, dtype=int), len(edges) - 1

    @log_call
    def select(self, controls, target_count, rng) -> Selection:
        _require(target_count, len(controls), "control population")
        strata, n_levels = self.assign_strata(controls)
        sizes = np.bincount(strata, minlength=n_levels)

        empty = np.flatnonzero(sizes == 0)
        if len(empty):
            raise DataSufficiencyError(f"Strata {empty.tolist()} are empty")

        allocation = allocate_proportional(sizes, target_count)
        chosen, weights = [], []
        for stratum in range(n_levels):
            n_h = int(allocation[stratum])
            if n_h == 0:
                continue
            members = np.flatnonzero(strata == stratum)
            _require(n_h, len(members), f"stratum {stratum}")
            chosen.append(rng.choice(members, size=n_h, replace=False))
            weights.append(np.full(n_h, sizes[stratum] / n_h))

        chosen = np.concatenate(chosen)
        weights = np.concatenate(weights)
        order = rng.permutation(len(chosen))
        return controls.iloc[chosen[order]], weights[order]


_SAMPLERS: Dict[str, Type[ControlSampler]] = {
    sampler.name: sampler
    for sampler in (
        SimpleRandomSampler,
        ProbabilityWeightedSampler,
        SingleStageClusterSampler,
        TwoStageClusterSampler,
        StratifiedSampler,
    )
}


@log_call
def normalize_scheme(name: str) -> str:
    """
    Canonical scheme name, resolving aliases.

    Raises
    ------
    UnsupportedSchemeError
        For reserved survey designs (``ACS``, ``NHANES``).
    ConfigurationError
        For any other unknown name.
    """
    key = SCHEME_ALIASES.get(name, name)
    if str(key).upper() in RESERVED_SCHEMES:
        raise UnsupportedSchemeError(
            f"Sampling scheme '{name}' is reserved and not implemented"
        )
    if key not in _SAMPLERS:
        raise ConfigurationError(
            f"Unknown sampling scheme '{name}'; expected one of "
            f"{list(SAMPLING_SCHEMES)}"
        )
    return key


@log_call
def get_sampler(name: str, **options) -> ControlSampler:
    """Instantiate the sampler registered under ``name``."""
    sampler_cls = _SAMPLERS[normalize_scheme(name)]
    try:
        return sampler_cls(**options)
    except TypeError as exc:
        raise ConfigurationError(
            f"Invalid options for sampling scheme '{name}': {exc}"
        ) from exc
