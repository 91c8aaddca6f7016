# compositional_tools/analysis/permanova.py
"""
PERMANOVA: permutation test of a group effect on a distance matrix.

The pseudo-F statistic comes from the sum-of-squares partition implied by
squared distances (Anderson 2001). Labels are shuffled in fixed-size chunks,
each chunk seeded from one SeedSequence, so the p-value is reproducible for a
given seed regardless of the number of workers.
"""

import logging
import math
from dataclasses import dataclass
from typing import Sequence, Union

import numpy as np
import pandas as pd
from skbio import DistanceMatrix

from compositional_tools.errors import (
    DegenerateDistributionError,
    InsufficientDataError,
    InvalidInputError,
)
from compositional_tools.utils.parallel import SeedLike, run_tasks, spawn_seeds

logger = logging.getLogger(__name__)

PERMUTATION_CHUNK_SIZE = 100


@dataclass
class PermanovaResult:
    test_statistic: float
    p_value: float
    r_squared: float
    permutations: int
    sample_size: int
    number_of_groups: int

    def to_series(self) -> pd.Series:
        return pd.Series({
            "method name": "PERMANOVA",
            "test statistic name": "pseudo-F",
            "sample size": self.sample_size,
            "number of groups": self.number_of_groups,
            "test statistic": self.test_statistic,
            "p-value": self.p_value,
            "R2": self.r_squared,
            "number of permutations": self.permutations,
        }, name="PERMANOVA results")


def _within_ss(dist_sq: np.ndarray, codes: np.ndarray, group_sizes: np.ndarray) -> float:
    """Sum over groups of within-group squared distances divided by group size."""
    n_groups = len(group_sizes)
    onehot = np.zeros((len(codes), n_groups))
    onehot[np.arange(len(codes)), codes] = 1.0
    within = np.einsum("ig,ij,jg->g", onehot, dist_sq, onehot) / 2.0
    return float(np.sum(within / group_sizes))


def _pseudo_f(ss_total: float, ss_within: float, n: int, k: int) -> float:
    ss_among = ss_total - ss_within
    if ss_within <= 0:
        return math.inf if ss_among > 0 else 0.0
    return (ss_among / (k - 1)) / (ss_within / (n - k))


def _permutation_chunk(dist_sq, codes, group_sizes, ss_total, n_perms, seed) -> np.ndarray:
    rng = np.random.default_rng(seed)
    n, k = len(codes), len(group_sizes)
    stats = np.empty(n_perms)
    for i in range(n_perms):
        permuted = rng.permutation(codes)
        stats[i] = _pseudo_f(ss_total, _within_ss(dist_sq, permuted, group_sizes), n, k)
    return stats


def _grouping_codes(distance_matrix: DistanceMatrix, grouping) -> pd.Series:
    ids = list(distance_matrix.ids)
    if isinstance(grouping, pd.Series):
        missing = sorted(set(ids) - set(grouping.index))
        extra = sorted(set(grouping.index) - set(ids))
        if missing or extra:
            raise InvalidInputError(
                f"Grouping does not match distance matrix ids; "
                f"missing labels for {missing}, unknown samples {extra}"
            )
        labels = grouping.loc[ids]
    else:
        labels = pd.Series(list(grouping), dtype=object)
        if len(labels) != len(ids):
            raise InvalidInputError(
                f"Grouping has {len(labels)} labels for {len(ids)} samples"
            )
        labels.index = ids
    if labels.isna().any():
        raise InvalidInputError(f"Samples without a group label: {labels.index[labels.isna()].tolist()}")
    return labels.astype(str)


def permanova(
    distance_matrix: DistanceMatrix,
    grouping: Union[pd.Series, Sequence],
    permutations: int = 999,
    seed: SeedLike = None,
    n_jobs: int = 1,
) -> PermanovaResult:
    """
    Test whether ``grouping`` explains variation in ``distance_matrix``.

    Args:
        distance_matrix: skbio DistanceMatrix over the samples
        grouping: Series indexed by sample id, or labels in matrix order
        permutations: Number of label permutations
        seed: Seed for the permutation stream
        n_jobs: Worker processes for the permutations

    Returns:
        PermanovaResult with p = (#{F_perm >= F_obs} + 1) / (permutations + 1)
    """
    if permutations < 1:
        raise InvalidInputError(f"Number of permutations must be >= 1, got {permutations}")
    labels = _grouping_codes(distance_matrix, grouping)

    sizes = labels.value_counts().sort_index()
    if len(sizes) < 2:
        raise InvalidInputError(f"PERMANOVA needs at least 2 groups, found {sizes.index.tolist()}")
    small = sizes[sizes < 2]
    if not small.empty:
        raise InsufficientDataError(
            f"PERMANOVA needs at least 2 samples per group; too few in: {small.to_dict()}"
        )

    group_names = sizes.index.tolist()
    codes = labels.map({g: i for i, g in enumerate(group_names)}).to_numpy(dtype=int)
    group_sizes = sizes.to_numpy(dtype=float)
    n, k = len(codes), len(group_names)

    dist_sq = np.asarray(distance_matrix.data, dtype=float) ** 2
    ss_total = dist_sq.sum() / 2.0 / n
    ss_within = _within_ss(dist_sq, codes, group_sizes)
    if ss_total <= 0:
        raise DegenerateDistributionError(
            f"All {n} samples are at distance zero from each other; pseudo-F is undefined"
        )
    if ss_within <= 0:
        logger.warning(f"All within-group distances are zero for groups {group_names}; pseudo-F is infinite")
    observed = _pseudo_f(ss_total, ss_within, n, k)

    n_chunks = math.ceil(permutations / PERMUTATION_CHUNK_SIZE)
    chunk_sizes = [PERMUTATION_CHUNK_SIZE] * (n_chunks - 1)
    chunk_sizes.append(permutations - PERMUTATION_CHUNK_SIZE * (n_chunks - 1))
    seeds = spawn_seeds(seed, n_chunks)
    tasks = [(dist_sq, codes, group_sizes, ss_total, size, s) for size, s in zip(chunk_sizes, seeds)]
    permuted = np.concatenate(run_tasks(_permutation_chunk, tasks, n_jobs=n_jobs))

    p_value = (np.sum(permuted >= observed) + 1) / (permutations + 1)
    result = PermanovaResult(
        test_statistic=float(observed),
        p_value=float(p_value),
        r_squared=float((ss_total - ss_within) / ss_total),
        permutations=permutations,
        sample_size=n,
        number_of_groups=k,
    )
    logger.info(f"PERMANOVA: pseudo-F={result.test_statistic:.4f}, R2={result.r_squared:.4f}, "
                f"p={result.p_value:.4f} ({permutations} permutations)")
    return result
