"""Shared fixtures: synthetic count tables with known structure."""

import io
import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest
from skbio import TreeNode

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from compositional_tools.core.tables import FeatureTable, SampleMetadata


SHIFTED_FEATURE = "taxon_07"


def make_shifted_table(seed=0, n_per_group=5, n_features=20, base=50, high=100, low=5):
    """Two groups; one feature has mean count ``high`` in A and ``low`` in B."""
    rng = np.random.default_rng(seed)
    features = [f"taxon_{i:02d}" for i in range(n_features)]
    samples = [f"A{i}" for i in range(n_per_group)] + [f"B{i}" for i in range(n_per_group)]
    counts = rng.poisson(base, size=(n_features, 2 * n_per_group))
    shifted = features.index(SHIFTED_FEATURE)
    counts[shifted, :n_per_group] = rng.poisson(high, size=n_per_group)
    counts[shifted, n_per_group:] = rng.poisson(low, size=n_per_group)
    table = FeatureTable(pd.DataFrame(counts, index=features, columns=samples))
    labels = {s: s[0] for s in samples}
    return table, SampleMetadata.from_mapping(labels)


@pytest.fixture
def shifted_data():
    return make_shifted_table()


@pytest.fixture
def three_group_data():
    rng = np.random.default_rng(11)
    features = [f"f{i}" for i in range(8)]
    samples = [f"{g}{i}" for g in "XYZ" for i in range(6)]
    counts = rng.poisson(40, size=(8, 18))
    counts[0, :6] = rng.poisson(200, size=6)
    counts[0, 12:] = rng.poisson(4, size=6)
    table = FeatureTable(pd.DataFrame(counts, index=features, columns=samples))
    return table, SampleMetadata.from_mapping({s: s[0] for s in samples})


@pytest.fixture
def small_tree():
    return TreeNode.read(io.StringIO("((A:1,B:1):1,(C:1,D:1):1);"))


@pytest.fixture
def tree_table():
    data = pd.DataFrame(
        {"s1": [5, 0, 0, 0], "s2": [0, 3, 0, 0], "s3": [2, 2, 0, 0], "s4": [0, 0, 4, 1]},
        index=["A", "B", "C", "D"],
    )
    return FeatureTable(data)
