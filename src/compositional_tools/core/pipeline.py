# compositional_tools/core/pipeline.py
"""
Main module for compositional_tools.

Runs the full batch analysis: CLR ordination, distance-based PERMANOVA,
Monte-Carlo differential abundance and random-forest feature ranking.
"""
import logging
import time
from dataclasses import dataclass
from typing import Dict, Optional

import pandas as pd
from skbio import DistanceMatrix, TreeNode

from compositional_tools.analysis.classifier import ClassifierResult, rank_features
from compositional_tools.analysis.differential_abundance import (
    clr_differential_abundance,
    posthoc_dunn,
)
from compositional_tools.analysis.distance import get_distance_method
from compositional_tools.analysis.monte_carlo import draw_clr_instances
from compositional_tools.analysis.ordination import OrdinationResult, clr_pca
from compositional_tools.analysis.permanova import PermanovaResult, permanova
from compositional_tools.config import AnalysisConfig
from compositional_tools.core.tables import (
    CompositionKind,
    FeatureTable,
    SampleMetadata,
    align_samples,
    to_clr,
)
from compositional_tools.utils.parallel import spawn_seeds

logger = logging.getLogger(__name__)


@dataclass
class AnalysisResults:
    differential_abundance: pd.DataFrame
    permanova: PermanovaResult
    distance_matrix: DistanceMatrix
    ordination: OrdinationResult
    classifier: ClassifierResult
    posthoc: Dict[str, pd.DataFrame]
    config: AnalysisConfig


def run_full_analysis(
    table: FeatureTable,
    metadata: SampleMetadata,
    config: Optional[AnalysisConfig] = None,
    tree: Optional[TreeNode] = None,
    alpha: float = 0.05,
    progress: bool = False,
) -> AnalysisResults:
    """
    Run every engine on one filtered RAW count table.

    Args:
        table: RAW counts, features x samples, already filtered
        metadata: Group label per sample; must cover exactly the table's samples
        config: Run configuration (defaults if None)
        tree: Rooted tree for 'unifrac' distances
        alpha: q-value threshold for selecting features for post-hoc tests
        progress: Show progress bars for the Monte-Carlo draws

    Returns:
        AnalysisResults
    """
    config = config or AnalysisConfig()
    table.require_kind(CompositionKind.RAW, operation="Full analysis")
    table.check_sample_totals()
    metadata = align_samples(table, metadata)
    logger.info(f"Starting analysis of {table.shape[0]} features x {table.shape[1]} samples, "
                f"groups: {metadata.group_sizes()}")
    start_time = time.time()
    if config.random_seed is None:
        logger.warning("No random_seed set; PERMANOVA, Monte-Carlo and classifier results will not be reproducible")
    permanova_seed, monte_carlo_seed = spawn_seeds(config.random_seed, 2)

    # Ordination
    clr = to_clr(table, config.pseudocount)
    ordination = clr_pca(clr)

    # Beta diversity + PERMANOVA
    method = get_distance_method(config.distance_method, tree=tree, pseudocount=config.pseudocount)
    dm = method.compute(clr if method.name == "aitchison" else table)
    perm = permanova(dm, metadata.groups, permutations=config.permutations,
                     seed=permanova_seed, n_jobs=config.n_jobs)

    # Differential abundance
    instances = draw_clr_instances(table, mc_draws=config.mc_draws, prior=config.dirichlet_prior,
                                   seed=monte_carlo_seed, n_jobs=config.n_jobs, progress=progress)
    da = clr_differential_abundance(instances, metadata, test=config.test, aggregate=config.aggregate)
    posthoc = {}
    if len(metadata.group_labels()) > 2:
        significant = da.index[da['q_value'] < alpha].tolist()
        if significant:
            posthoc = posthoc_dunn(instances, metadata, significant)

    # Feature ranking
    clf = rank_features(table, metadata, test_size=config.test_size, n_estimators=config.n_estimators,
                        seed=config.random_seed, importance=config.importance, n_jobs=config.n_jobs)

    elapsed = time.time() - start_time
    minutes, seconds = divmod(elapsed, 60)
    logger.info(f"Analysis finished in {int(minutes)}m {int(seconds)}s")

    return AnalysisResults(
        differential_abundance=da,
        permanova=perm,
        distance_matrix=dm,
        ordination=ordination,
        classifier=clf,
        posthoc=posthoc,
        config=config,
    )
