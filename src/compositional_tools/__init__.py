# compositional_tools/__init__.py
"""
compositional_tools - compositional analysis of microbiome count tables.

This package provides the statistical core of a grouped microbiome comparison:
1. CLR transformation with pseudocount zero replacement
2. Aitchison and UniFrac distance matrices
3. PERMANOVA permutation tests
4. Monte-Carlo Dirichlet instances and ALDEx2-like per-feature tests
5. CLR PCA ordination
6. Random-forest feature ranking
"""

__version__ = "0.1.0"

from compositional_tools.logger import setup_logger
from compositional_tools.config import AnalysisConfig
from compositional_tools.errors import (
    CompositionalError,
    InvalidInputError,
    TreeMismatchError,
    InsufficientDataError,
    DegenerateDistributionError,
)
from compositional_tools.core.tables import (
    CompositionKind,
    FeatureTable,
    SampleMetadata,
    align_samples,
    aggregate_by_taxonomy,
    to_relative,
    to_clr,
)
from compositional_tools.core.pipeline import run_full_analysis, AnalysisResults
