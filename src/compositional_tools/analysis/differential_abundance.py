# compositional_tools/analysis/differential_abundance.py
"""
ALDEx2-like per-feature differential abundance.

Every feature is tested in every Monte-Carlo CLR instance (Welch's t-test for
two groups, one-way ANOVA or Kruskal-Wallis for more). Statistics, p-values
and effect sizes are aggregated across instances, then BH-corrected.
"""

import logging
from typing import Dict, List, Optional

import numpy as np
import pandas as pd
from scipy import stats
from statsmodels.stats.multitest import multipletests
import scikit_posthocs as sp

from compositional_tools.analysis.monte_carlo import MonteCarloInstances, draw_clr_instances
from compositional_tools.config import AnalysisConfig
from compositional_tools.core.tables import FeatureTable, SampleMetadata, align_samples
from compositional_tools.errors import (
    DegenerateDistributionError,
    InsufficientDataError,
    InvalidInputError,
)

logger = logging.getLogger(__name__)


def _group_columns(instances: MonteCarloInstances, metadata: SampleMetadata) -> Dict[str, np.ndarray]:
    """Column indices of each group, groups in sorted order."""
    missing = sorted(set(instances.sample_ids) - set(metadata.sample_ids))
    if missing:
        raise InvalidInputError(f"Samples without metadata: {missing}")
    groups = metadata.groups.loc[instances.sample_ids].to_numpy()
    columns = {g: np.flatnonzero(groups == g) for g in sorted(set(groups))}
    small = {g: len(idx) for g, idx in columns.items() if len(idx) < 2}
    if small:
        raise InsufficientDataError(f"Need at least 2 samples per group; too few in: {small}")
    if len(columns) < 2:
        raise InvalidInputError(f"Need at least 2 groups, found {list(columns)}")
    return columns


def _pooled_sd(blocks: List[np.ndarray]) -> np.ndarray:
    """Pooled standard deviation per feature across group blocks (features x samples)."""
    ss = sum((b.shape[1] - 1) * b.var(axis=1, ddof=1) for b in blocks)
    dof = sum(b.shape[1] for b in blocks) - len(blocks)
    return np.sqrt(ss / dof)


def _test_instance(blocks: List[np.ndarray], test: str):
    """Per-feature statistic and p-value for one CLR instance."""
    if len(blocks) == 2 and test == "welch":
        res = stats.ttest_ind(blocks[0], blocks[1], axis=1, equal_var=False)
    elif len(blocks) == 2 and test == "wilcoxon":
        res = stats.mannwhitneyu(blocks[0], blocks[1], axis=1, alternative="two-sided")
    elif test in ("welch", "anova"):
        res = stats.f_oneway(*blocks, axis=1)
    elif test == "kruskal":
        res = stats.kruskal(*blocks, axis=1)
    elif test == "wilcoxon":
        raise InvalidInputError("The Wilcoxon rank-sum test needs exactly 2 groups")
    else:
        raise InvalidInputError(f"Unknown test '{test}'")
    return np.asarray(res.statistic, dtype=float), np.asarray(res.pvalue, dtype=float)


def _effect_size(blocks: List[np.ndarray], pooled: np.ndarray) -> np.ndarray:
    medians = np.column_stack([np.median(b, axis=1) for b in blocks])
    if len(blocks) == 2:
        diff = medians[:, 0] - medians[:, 1]
    else:
        diff = medians.max(axis=1) - medians.min(axis=1)
    return diff / pooled


def clr_differential_abundance(
    instances: MonteCarloInstances,
    metadata: SampleMetadata,
    test: str = "welch",
    aggregate: str = "median",
) -> pd.DataFrame:
    """
    Test every feature across all Monte-Carlo instances.

    Parameters
    ----------
    instances
        CLR instances from draw_clr_instances
    metadata
        group label per sample
    test
        'welch', 'anova', 'kruskal' or 'wilcoxon'
    aggregate
        'median' or 'mean' across instances

    Returns
    -------
    DataFrame indexed by feature, one row per feature, with columns
      statistic, p_value, q_value, effect_size, median_clr_<group>
    sorted ascending by q_value. For two groups the effect size is
    (first group - second group) in sorted label order.
    """
    if aggregate not in ("median", "mean"):
        raise InvalidInputError(f"Unknown aggregate '{aggregate}'")
    reduce = np.median if aggregate == "median" else np.mean
    columns = _group_columns(instances, metadata)
    group_names = list(columns)
    logger.info(f"Testing {len(instances.feature_ids)} features across {instances.mc_draws} "
                f"instances ({test}, groups: {group_names})")

    n_draws, n_feats = instances.mc_draws, len(instances.feature_ids)
    statistics = np.empty((n_draws, n_feats))
    pvals = np.empty((n_draws, n_feats))
    effects = np.empty((n_draws, n_feats))
    group_medians = np.empty((n_draws, n_feats, len(group_names)))

    for m in range(n_draws):
        mat = instances.values[m]
        blocks = [mat[:, columns[g]] for g in group_names]
        pooled = _pooled_sd(blocks)
        flat = np.flatnonzero(~(pooled > 0))
        if flat.size:
            feat = instances.feature_ids[flat[0]]
            raise DegenerateDistributionError(
                f"Feature '{feat}' has zero within-group variance in Monte-Carlo instance {m}"
            )
        statistics[m], pvals[m] = _test_instance(blocks, test)
        effects[m] = _effect_size(blocks, pooled)
        for gi, b in enumerate(blocks):
            group_medians[m, :, gi] = np.median(b, axis=1)

    bad = np.flatnonzero(np.isnan(pvals).any(axis=0))
    if bad.size:
        raise DegenerateDistributionError(
            f"Test '{test}' returned NaN p-values for feature '{instances.feature_ids[bad[0]]}'"
        )

    results = pd.DataFrame({
        'feature': instances.feature_ids,
        'statistic': reduce(statistics, axis=0),
        'p_value': reduce(pvals, axis=0),
        'effect_size': reduce(effects, axis=0),
    }).set_index('feature')

    results['q_value'] = multipletests(results['p_value'], method='fdr_bh')[1]
    for gi, g in enumerate(group_names):
        results[f'median_clr_{g}'] = reduce(group_medians[:, :, gi], axis=0)

    results = results[['statistic', 'p_value', 'q_value', 'effect_size']
                      + [f'median_clr_{g}' for g in group_names]]
    results = results.sort_index().sort_values(['q_value', 'p_value'], kind='mergesort',
                                               key=lambda s: s.abs())
    logger.info(f"{int((results['q_value'] < 0.05).sum())} features with q < 0.05")
    return results


def posthoc_dunn(
    instances: MonteCarloInstances,
    metadata: SampleMetadata,
    features: Optional[List[str]] = None,
) -> Dict[str, pd.DataFrame]:
    """
    Dunn's pairwise post-hoc test (Holm-adjusted) on instance-averaged CLR
    values, for features found significant in a multi-group test.
    """
    columns = _group_columns(instances, metadata)
    expected = instances.expected_clr()
    features = features if features is not None else instances.feature_ids
    unknown = [f for f in features if f not in expected.index]
    if unknown:
        raise InvalidInputError(f"Unknown features for post-hoc testing: {unknown}")

    group_of = metadata.groups.loc[instances.sample_ids]
    posthoc_results = {}
    for feat in features:
        long_df = pd.DataFrame({'clr': expected.loc[feat].to_numpy(), 'group': group_of.to_numpy()})
        posthoc_results[feat] = sp.posthoc_dunn(long_df, val_col='clr', group_col='group', p_adjust='holm')
    logger.info(f"Dunn's post-hoc tests for {len(posthoc_results)} features over {len(columns)} groups")
    return posthoc_results


def aldex_like(
    table: FeatureTable,
    metadata: SampleMetadata,
    config: Optional[AnalysisConfig] = None,
    progress: bool = False,
) -> pd.DataFrame:
    """
    Monte-Carlo Dirichlet + CLR + per-feature tests in one call.

    Returns the clr_differential_abundance table with mean_abundance_<group>
    columns (raw counts) appended.
    """
    config = config or AnalysisConfig()
    metadata = align_samples(table, metadata)
    instances = draw_clr_instances(
        table,
        mc_draws=config.mc_draws,
        prior=config.dirichlet_prior,
        seed=config.random_seed,
        n_jobs=config.n_jobs,
        progress=progress,
    )
    results = clr_differential_abundance(instances, metadata, test=config.test,
                                         aggregate=config.aggregate)

    groups = metadata.groups
    for g in metadata.group_labels():
        idx = groups[groups == g].index
        results[f'mean_abundance_{g}'] = table.data[idx].mean(axis=1)
    return results
