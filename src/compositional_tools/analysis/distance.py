# compositional_tools/analysis/distance.py
"""
Sample-by-sample dissimilarity matrices.

Two interchangeable strategies share the DistanceMethod interface:
  - UniFracDistance: unweighted UniFrac over raw counts and a rooted tree
  - AitchisonDistance: Euclidean distance between CLR vectors
"""

import logging
from collections import Counter
from typing import List, Optional

from scipy.spatial.distance import pdist, squareform
from skbio import DistanceMatrix, TreeNode
from skbio.diversity import beta_diversity

from compositional_tools.analysis.transform import clr_table
from compositional_tools.config import DEFAULT_PSEUDOCOUNT
from compositional_tools.core.tables import CompositionKind, FeatureTable
from compositional_tools.errors import InvalidInputError, TreeMismatchError

logger = logging.getLogger(__name__)


class DistanceMethod:
    """Computes a pairwise distance matrix from a feature table."""

    name = None

    def compute(self, table: FeatureTable) -> DistanceMatrix:
        raise NotImplementedError


def validate_tree(tree: TreeNode, feature_ids: List[str]):
    """
    Tip names must match the feature ids exactly, one tip per feature.

    The tree must also be rooted (at most two children at the root) with a
    non-negative length on every non-root branch.
    """
    tip_names = [tip.name for tip in tree.tips()]
    dup_tips = sorted(name for name, n in Counter(tip_names).items() if n > 1 and name is not None)
    if dup_tips:
        raise TreeMismatchError(f"Tree has duplicate tip names: {dup_tips}")
    tips = set(tip_names)
    features = set(feature_ids)
    missing = sorted(features - tips)
    extra = sorted(t for t in tips - features if t is not None)
    unnamed = None in tips
    if missing or extra or unnamed:
        parts = []
        if missing:
            parts.append(f"features absent from tree: {missing}")
        if extra:
            parts.append(f"tree tips absent from table: {extra}")
        if unnamed:
            parts.append("tree has unnamed tips")
        raise TreeMismatchError("Tree does not match feature table; " + "; ".join(parts))

    root = tree.root()
    if len(root.children) > 2:
        raise TreeMismatchError(
            f"Tree must be rooted; the root has {len(root.children)} children"
        )
    no_length = [node.name for node in tree.traverse() if not node.is_root() and node.length is None]
    if no_length:
        raise TreeMismatchError(f"Tree has branches without a length below nodes: {no_length}")
    negative = [node.name for node in tree.traverse() if node.length is not None and node.length < 0]
    if negative:
        raise InvalidInputError(f"Tree has negative branch lengths below nodes: {negative}")


class UniFracDistance(DistanceMethod):
    """
    Unweighted UniFrac: branch length unique to either sample's observed
    lineages over branch length observed by either sample.
    """

    name = "unifrac"

    def __init__(self, tree: TreeNode):
        if tree is None:
            raise InvalidInputError("UniFrac distance requires a rooted phylogenetic tree")
        self.tree = tree

    def compute(self, table: FeatureTable) -> DistanceMatrix:
        table.require_kind(CompositionKind.RAW, operation="UniFrac distance")
        validate_tree(self.tree, table.feature_ids)
        logger.debug(f"Unweighted UniFrac over {table.shape[0]} tips and {table.shape[1]} samples")
        return beta_diversity(
            "unweighted_unifrac",
            table.transpose().to_numpy(),
            ids=table.sample_ids,
            taxa=table.feature_ids,
            tree=self.tree,
        )


class AitchisonDistance(DistanceMethod):
    """Euclidean distance in CLR space."""

    name = "aitchison"

    def __init__(self, pseudocount: float = DEFAULT_PSEUDOCOUNT):
        self.pseudocount = pseudocount

    def compute(self, table: FeatureTable) -> DistanceMatrix:
        if table.kind is not CompositionKind.CLR:
            table = clr_table(table, self.pseudocount)
        dist = squareform(pdist(table.transpose().to_numpy(), metric="euclidean"))
        return DistanceMatrix(dist, ids=table.sample_ids)


def get_distance_method(name: str, tree: Optional[TreeNode] = None,
                        pseudocount: float = DEFAULT_PSEUDOCOUNT) -> DistanceMethod:
    """Look up a distance strategy by name ('aitchison' or 'unifrac')."""
    if name == "aitchison":
        return AitchisonDistance(pseudocount)
    if name == "unifrac":
        return UniFracDistance(tree)
    raise InvalidInputError(f"Unknown distance method '{name}'")
