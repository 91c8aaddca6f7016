# compositional_tools/analysis/monte_carlo.py
"""
Monte-Carlo Dirichlet instances of each sample's composition.

Each sample's counts plus a uniform prior parameterize a Dirichlet posterior.
Draws are strictly positive, so they are CLR-transformed without another
pseudocount.
"""

import logging
from typing import List

import numpy as np
import pandas as pd

from compositional_tools.analysis.transform import clr_positive
from compositional_tools.core.tables import CompositionKind, FeatureTable
from compositional_tools.errors import InvalidInputError
from compositional_tools.utils.parallel import SeedLike, run_tasks, spawn_seeds

logger = logging.getLogger(__name__)


class MonteCarloInstances:
    """
    CLR values of M Dirichlet instances for every feature and sample.

    ``values`` has shape (mc_draws, n_features, n_samples).
    """

    def __init__(self, values: np.ndarray, feature_ids: List[str], sample_ids: List[str]):
        if values.ndim != 3 or values.shape[1:] != (len(feature_ids), len(sample_ids)):
            raise InvalidInputError(
                f"Instance array of shape {values.shape} does not match "
                f"{len(feature_ids)} features x {len(sample_ids)} samples"
            )
        self.values = values
        self.feature_ids = list(feature_ids)
        self.sample_ids = list(sample_ids)

    @property
    def mc_draws(self) -> int:
        return self.values.shape[0]

    def instance(self, m: int) -> FeatureTable:
        """The m-th complete CLR feature table."""
        return FeatureTable(
            pd.DataFrame(self.values[m], index=self.feature_ids, columns=self.sample_ids),
            CompositionKind.CLR,
        )

    def sample_instances(self, sample_id: str) -> pd.DataFrame:
        """All M CLR vectors of one sample (rows = draws, columns = features)."""
        j = self.sample_ids.index(sample_id)
        return pd.DataFrame(self.values[:, :, j], columns=self.feature_ids)

    def expected_clr(self) -> pd.DataFrame:
        """Mean CLR across instances, features x samples."""
        return pd.DataFrame(self.values.mean(axis=0), index=self.feature_ids, columns=self.sample_ids)


def _sample_draws(sample_id: str, counts: np.ndarray, prior: float, mc_draws: int, seed) -> np.ndarray:
    """(mc_draws, n_features) CLR instances for one sample."""
    rng = np.random.default_rng(seed)
    alphas = counts + prior
    draws = rng.dirichlet(alphas, size=mc_draws)
    if not np.all(draws > 0):
        # Very small alphas can underflow to exact zeros
        raise InvalidInputError(
            f"Dirichlet draws for sample '{sample_id}' underflowed to zero; increase the prior"
        )
    return clr_positive(draws)


def draw_clr_instances(
    table: FeatureTable,
    mc_draws: int = 128,
    prior: float = 0.5,
    seed: SeedLike = None,
    n_jobs: int = 1,
    progress: bool = False,
) -> MonteCarloInstances:
    """
    Draw ``mc_draws`` Dirichlet instances per sample and CLR-transform them.

    Parameters
    ----------
    table
        RAW counts, features x samples
    mc_draws
        number of Monte-Carlo instances
    prior
        uniform pseudocount added to every count
    seed
        run seed; each sample gets its own child seed
    n_jobs
        worker processes, one task per sample

    Returns
    -------
    MonteCarloInstances with values of shape (mc_draws, n_features, n_samples)
    """
    table.require_kind(CompositionKind.RAW, operation="Monte-Carlo Dirichlet sampling")
    if prior is None or prior <= 0:
        raise InvalidInputError(f"Dirichlet prior must be > 0, got {prior}")
    if mc_draws < 1:
        raise InvalidInputError(f"Number of Monte-Carlo draws must be >= 1, got {mc_draws}")
    if table.shape[0] < 2:
        raise InvalidInputError(f"CLR needs at least 2 features, got {table.shape[0]}")

    counts = table.values()
    seeds = spawn_seeds(seed, table.shape[1])
    tasks = [
        (sample, counts[:, j], prior, mc_draws, seeds[j])
        for j, sample in enumerate(table.sample_ids)
    ]
    logger.info(f"Drawing {mc_draws} Dirichlet instances for {len(tasks)} samples")
    per_sample = run_tasks(_sample_draws, tasks, n_jobs=n_jobs, desc="Dirichlet draws", progress=progress)

    values = np.stack(per_sample, axis=2)
    return MonteCarloInstances(values, table.feature_ids, table.sample_ids)
