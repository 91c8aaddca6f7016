# compositional_tools/analysis/ordination.py
"""
Ordination of CLR data (PCA biplot coordinates) and of distance matrices (PCoA).
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
import pandas as pd
from sklearn.decomposition import PCA
from skbio import DistanceMatrix
from skbio.stats.ordination import pcoa

from compositional_tools.core.tables import CompositionKind, FeatureTable
from compositional_tools.errors import DegenerateDistributionError, InvalidInputError

logger = logging.getLogger(__name__)


@dataclass
class OrdinationResult:
    """Sample scores and feature loadings on the same principal components."""

    scores: pd.DataFrame  # samples x PCs
    loadings: pd.DataFrame  # features x PCs
    explained_variance_ratio: pd.Series
    mean: pd.Series  # per-feature CLR mean removed before decomposition

    def reconstruct(self) -> pd.DataFrame:
        """scores . loadings^T + mean, samples x features."""
        approx = self.scores.to_numpy() @ self.loadings.to_numpy().T + self.mean.to_numpy()
        return pd.DataFrame(approx, index=self.scores.index, columns=self.loadings.index)


def clr_pca(clr: FeatureTable, n_components: Optional[int] = None) -> OrdinationResult:
    """
    Covariance PCA of a CLR table with samples as rows.

    At most min(n_features, n_samples) - 1 components are available, since
    centering and the CLR zero-sum constraint each remove one degree of freedom.
    """
    clr.require_kind(CompositionKind.CLR, operation="CLR ordination")
    n_features, n_samples = clr.shape
    max_components = min(n_features, n_samples) - 1
    if max_components < 1:
        raise InvalidInputError(
            f"PCA needs at least 2 features and 2 samples, got {n_features} x {n_samples}"
        )
    if n_components is None:
        n_components = max_components
    if not 1 <= n_components <= max_components:
        raise InvalidInputError(
            f"n_components must be between 1 and {max_components}, got {n_components}"
        )

    X = clr.transpose()
    if np.allclose(X.var(axis=0, ddof=0).to_numpy(), 0.0):
        raise DegenerateDistributionError("CLR data has zero variance across samples; PCA is undefined")

    pca = PCA(n_components=n_components, svd_solver="full")
    scores = pca.fit_transform(X.to_numpy())
    pcs = [f"PC{i + 1}" for i in range(n_components)]
    result = OrdinationResult(
        scores=pd.DataFrame(scores, index=X.index, columns=pcs),
        loadings=pd.DataFrame(pca.components_.T, index=X.columns, columns=pcs),
        explained_variance_ratio=pd.Series(pca.explained_variance_ratio_, index=pcs),
        mean=pd.Series(pca.mean_, index=X.columns),
    )
    logger.info(f"CLR PCA variance ratio: {pca.explained_variance_ratio_[:2]}")
    return result


def pcoa_ordination(distance_matrix: DistanceMatrix, n_components: Optional[int] = None) -> pd.DataFrame:
    """Principal coordinates of a distance matrix, samples x PCs."""
    n = distance_matrix.shape[0]
    if n < 3:
        raise InvalidInputError(f"PCoA needs at least 3 samples, got {n}")
    if n_components is None:
        n_components = n - 1
    if not 1 <= n_components <= n - 1:
        raise InvalidInputError(f"n_components must be between 1 and {n - 1}, got {n_components}")
    if np.allclose(distance_matrix.data, 0.0):
        raise DegenerateDistributionError("All pairwise distances are zero; PCoA is undefined")
    ordination = pcoa(distance_matrix)
    coords = ordination.samples.iloc[:, :n_components].copy()
    coords.columns = [f"PC{i + 1}" for i in range(coords.shape[1])]
    coords.index = list(distance_matrix.ids)
    return coords
