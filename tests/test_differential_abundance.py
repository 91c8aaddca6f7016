"""Tests for per-feature Monte-Carlo hypothesis testing."""

import numpy as np
import pandas as pd
import pytest

from compositional_tools.analysis.differential_abundance import (
    aldex_like,
    clr_differential_abundance,
    posthoc_dunn,
)
from compositional_tools.analysis.monte_carlo import MonteCarloInstances, draw_clr_instances
from compositional_tools.config import AnalysisConfig
from compositional_tools.core.tables import SampleMetadata
from compositional_tools.errors import (
    DegenerateDistributionError,
    InsufficientDataError,
    InvalidInputError,
)

from conftest import SHIFTED_FEATURE


@pytest.fixture
def shifted_results(shifted_data):
    table, meta = shifted_data
    return aldex_like(table, meta, AnalysisConfig(mc_draws=64, random_seed=4))


def test_shifted_feature_ranked_first(shifted_results):
    assert shifted_results.index[0] == SHIFTED_FEATURE
    assert shifted_results['q_value'].iloc[0] < 0.05
    assert shifted_results['effect_size'].abs().idxmax() == SHIFTED_FEATURE
    # group A carries the high counts
    assert shifted_results.loc[SHIFTED_FEATURE, 'effect_size'] > 0


def test_one_record_per_feature(shifted_data, shifted_results):
    table, _ = shifted_data
    assert sorted(shifted_results.index) == sorted(table.feature_ids)
    assert not shifted_results.index.has_duplicates
    for col in ['statistic', 'p_value', 'q_value', 'effect_size',
                'median_clr_A', 'median_clr_B', 'mean_abundance_A', 'mean_abundance_B']:
        assert col in shifted_results.columns


def test_sorted_by_q_value(shifted_results):
    q = shifted_results['q_value'].to_numpy()
    assert np.all(np.diff(q) >= 0)


def test_bh_monotone_in_raw_p(shifted_results):
    by_p = shifted_results.sort_values('p_value')
    assert np.all(np.diff(by_p['q_value'].to_numpy()) >= -1e-12)
    assert (shifted_results['q_value'] >= shifted_results['p_value'] - 1e-12).all()
    assert shifted_results['q_value'].between(0, 1).all()


def test_same_seed_same_results(shifted_data):
    table, meta = shifted_data
    config = AnalysisConfig(mc_draws=16, random_seed=8)
    pd.testing.assert_frame_equal(aldex_like(table, meta, config), aldex_like(table, meta, config))


@pytest.mark.parametrize("test", ["wilcoxon", "anova", "kruskal"])
def test_alternative_two_group_tests(shifted_data, test):
    table, meta = shifted_data
    instances = draw_clr_instances(table, mc_draws=16, seed=1)
    res = clr_differential_abundance(instances, meta, test=test)
    assert len(res) == 20
    assert res['p_value'].between(0, 1).all()


def test_mean_aggregate(shifted_data):
    table, meta = shifted_data
    instances = draw_clr_instances(table, mc_draws=16, seed=1)
    res = clr_differential_abundance(instances, meta, aggregate="mean")
    assert res.index[0] == SHIFTED_FEATURE


def test_three_groups(three_group_data):
    table, meta = three_group_data
    instances = draw_clr_instances(table, mc_draws=32, seed=3)
    res = clr_differential_abundance(instances, meta, test="kruskal")
    assert res.index[0] == "f0"
    assert (res['effect_size'] >= 0).all()
    assert {'median_clr_X', 'median_clr_Y', 'median_clr_Z'} <= set(res.columns)

    posthoc = posthoc_dunn(instances, meta, ["f0"])
    assert posthoc["f0"].shape == (3, 3)


def test_wilcoxon_needs_two_groups(three_group_data):
    table, meta = three_group_data
    instances = draw_clr_instances(table, mc_draws=4, seed=3)
    with pytest.raises(InvalidInputError):
        clr_differential_abundance(instances, meta, test="wilcoxon")


def test_singleton_group_rejected(shifted_data):
    table, _ = shifted_data
    labels = {s: ("A" if s.startswith("A") else "B") for s in table.sample_ids}
    labels["B4"] = "C"
    instances = draw_clr_instances(table, mc_draws=4, seed=0)
    with pytest.raises(InsufficientDataError, match="C"):
        clr_differential_abundance(instances, SampleMetadata.from_mapping(labels))


def test_zero_variance_feature_rejected():
    rng = np.random.default_rng(0)
    values = rng.normal(size=(3, 4, 6))
    values[:, 2, :] = 1.5
    instances = MonteCarloInstances(values, ["f0", "f1", "flat", "f3"], [f"s{i}" for i in range(6)])
    meta = SampleMetadata.from_mapping({f"s{i}": "ab"[i % 2] for i in range(6)})
    with pytest.raises(DegenerateDistributionError, match="flat"):
        clr_differential_abundance(instances, meta)
