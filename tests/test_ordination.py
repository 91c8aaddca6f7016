"""Tests for CLR PCA and PCoA."""

import numpy as np
import pandas as pd
import pytest

from compositional_tools.analysis.distance import UniFracDistance
from compositional_tools.analysis.ordination import clr_pca, pcoa_ordination
from compositional_tools.analysis.transform import clr_table
from compositional_tools.core.tables import CompositionKind, FeatureTable
from compositional_tools.errors import DegenerateDistributionError, InvalidInputError


@pytest.fixture
def clr(shifted_data):
    table, _ = shifted_data
    return clr_table(table, 0.65)


def test_component_limit(clr):
    res = clr_pca(clr)
    # 20 features, 10 samples
    assert res.scores.shape == (10, 9)
    assert res.loadings.shape == (20, 9)
    with pytest.raises(InvalidInputError):
        clr_pca(clr, n_components=10)


def test_loadings_follow_feature_axis(clr):
    res = clr_pca(clr, n_components=2)
    assert res.loadings.index.tolist() == clr.feature_ids
    assert res.scores.index.tolist() == clr.sample_ids
    assert list(res.scores.columns) == ["PC1", "PC2"]


def test_full_reconstruction(clr):
    res = clr_pca(clr)
    np.testing.assert_allclose(res.reconstruct().to_numpy(), clr.transpose().to_numpy(), atol=1e-8)


def test_more_samples_than_features():
    rng = np.random.default_rng(1)
    table = FeatureTable(pd.DataFrame(rng.poisson(20, size=(4, 12)),
                                      index=list("abcd"), columns=[f"s{i}" for i in range(12)]))
    clr = clr_table(table, 0.65)
    res = clr_pca(clr)
    assert res.scores.shape[1] == 3
    np.testing.assert_allclose(res.reconstruct().to_numpy(), clr.transpose().to_numpy(), atol=1e-8)


def test_leading_component_separates_groups(shifted_data, clr):
    _, meta = shifted_data
    res = clr_pca(clr, n_components=1)
    pc1 = res.scores["PC1"]
    a, b = pc1[meta.groups == "A"], pc1[meta.groups == "B"]
    assert a.max() < b.min() or b.max() < a.min()
    assert res.loadings["PC1"].abs().idxmax() == "taxon_07"


def test_requires_clr(shifted_data):
    table, _ = shifted_data
    with pytest.raises(InvalidInputError):
        clr_pca(table)


def test_zero_variance_rejected():
    data = pd.DataFrame({"s1": [1.0, -1.0], "s2": [1.0, -1.0], "s3": [1.0, -1.0]}, index=["a", "b"])
    with pytest.raises(DegenerateDistributionError):
        clr_pca(FeatureTable(data, CompositionKind.CLR))


def test_pcoa_of_unifrac(small_tree, tree_table):
    dm = UniFracDistance(small_tree).compute(tree_table)
    coords = pcoa_ordination(dm, n_components=2)
    assert coords.shape == (4, 2)
    assert coords.index.tolist() == tree_table.sample_ids
