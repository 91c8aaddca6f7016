# compositional_tools/analysis/__init__.py
"""Statistical engines operating on in-memory feature tables."""

from compositional_tools.analysis.transform import clr, clr_positive, clr_table, closure
from compositional_tools.analysis.distance import (
    AitchisonDistance,
    DistanceMethod,
    UniFracDistance,
    get_distance_method,
)
from compositional_tools.analysis.permanova import PermanovaResult, permanova
from compositional_tools.analysis.monte_carlo import MonteCarloInstances, draw_clr_instances
from compositional_tools.analysis.differential_abundance import (
    aldex_like,
    clr_differential_abundance,
    posthoc_dunn,
)
from compositional_tools.analysis.ordination import OrdinationResult, clr_pca, pcoa_ordination
from compositional_tools.analysis.classifier import ClassifierResult, rank_features
