# compositional_tools/core/tables.py
"""
Typed containers for feature tables and sample metadata.

Tables carry a CompositionKind tag so engines can assert the representation
they need instead of trusting the caller. Joins between tables, metadata and
taxonomy are keyed on feature/sample identifiers and fail on any missing key.
"""

import logging
from enum import Enum
from typing import Dict, List, Mapping, Optional

import numpy as np
import pandas as pd

from compositional_tools.errors import InvalidInputError

logger = logging.getLogger(__name__)


class CompositionKind(Enum):
    RAW = "raw"
    RELATIVE = "relative"
    CLR = "clr"


class FeatureTable:
    """
    Features x samples matrix tagged with its composition kind.

    Parameters
    ----------
    data
        DataFrame, index = feature ids, columns = sample ids
    kind
        What the values represent (raw counts, proportions or CLR values)
    """

    def __init__(self, data: pd.DataFrame, kind: CompositionKind = CompositionKind.RAW):
        if not isinstance(data, pd.DataFrame):
            raise InvalidInputError("Feature table must be a pandas DataFrame")
        if data.shape[0] == 0 or data.shape[1] == 0:
            raise InvalidInputError(f"Feature table is empty (shape {data.shape})")
        if data.index.has_duplicates:
            dups = data.index[data.index.duplicated()].unique().tolist()
            raise InvalidInputError(f"Duplicate feature ids: {dups}")
        if data.columns.has_duplicates:
            dups = data.columns[data.columns.duplicated()].unique().tolist()
            raise InvalidInputError(f"Duplicate sample ids: {dups}")

        non_numeric = [c for c in data.columns if not pd.api.types.is_numeric_dtype(data[c])]
        if non_numeric:
            raise InvalidInputError(f"Non-numeric values in samples: {non_numeric}")
        values = data.to_numpy(dtype=float)
        if not np.all(np.isfinite(values)):
            bad = data.columns[~np.isfinite(values).all(axis=0)].tolist()
            raise InvalidInputError(f"Missing or infinite values in samples: {bad}")
        if kind is not CompositionKind.CLR and (values < 0).any():
            bad = data.columns[(values < 0).any(axis=0)].tolist()
            raise InvalidInputError(f"Negative abundances in samples: {bad}")

        self.data = data.astype(float)
        self.kind = kind

    @property
    def feature_ids(self) -> List[str]:
        return self.data.index.tolist()

    @property
    def sample_ids(self) -> List[str]:
        return self.data.columns.tolist()

    @property
    def shape(self):
        return self.data.shape

    def values(self) -> np.ndarray:
        return self.data.to_numpy(dtype=float)

    def require_kind(self, *kinds: CompositionKind, operation: str = "this operation"):
        """Raise InvalidInputError unless the table is one of ``kinds``."""
        if self.kind not in kinds:
            expected = ", ".join(k.value for k in kinds)
            raise InvalidInputError(
                f"{operation} requires a {expected} table, got {self.kind.value}"
            )

    def check_sample_totals(self):
        """Every sample entering a normalization needs a positive total."""
        totals = self.data.sum(axis=0)
        empty = totals[totals <= 0].index.tolist()
        if empty:
            raise InvalidInputError(f"Samples with zero total abundance: {empty}")

    def subset_samples(self, sample_ids) -> "FeatureTable":
        return FeatureTable(self.data.loc[:, list(sample_ids)], self.kind)

    def transpose(self) -> pd.DataFrame:
        """Samples x features view, the orientation used by sklearn."""
        return self.data.T

    def __repr__(self):
        return f"FeatureTable(kind={self.kind.value}, features={self.shape[0]}, samples={self.shape[1]})"


def to_relative(table: FeatureTable) -> FeatureTable:
    """RAW -> RELATIVE: scale each sample to proportions summing to 1."""
    table.require_kind(CompositionKind.RAW, operation="Relative abundance conversion")
    table.check_sample_totals()
    rel = table.data.div(table.data.sum(axis=0), axis=1)
    return FeatureTable(rel, CompositionKind.RELATIVE)


def to_clr(table: FeatureTable, pseudocount: float) -> FeatureTable:
    """RAW or RELATIVE -> CLR, see analysis.transform.clr_table."""
    from compositional_tools.analysis.transform import clr_table
    return clr_table(table, pseudocount)


class SampleMetadata:
    """
    Sample id -> categorical group label, with optional covariates.

    Parameters
    ----------
    data
        DataFrame indexed by sample id
    group_col
        Column holding the group label
    """

    def __init__(self, data: pd.DataFrame, group_col: str = "Group"):
        if group_col not in data.columns:
            raise InvalidInputError(f"Group column '{group_col}' not found in metadata")
        if data.index.has_duplicates:
            dups = data.index[data.index.duplicated()].unique().tolist()
            raise InvalidInputError(f"Samples with more than one metadata entry: {dups}")
        missing = data.index[data[group_col].isna()].tolist()
        if missing:
            raise InvalidInputError(f"Samples without a '{group_col}' label: {missing}")
        self.data = data.copy()
        self.group_col = group_col
        if self.groups.nunique() < 2:
            raise InvalidInputError(
                f"Need at least 2 groups in '{group_col}', found {self.groups.unique().tolist()}"
            )

    @classmethod
    def from_mapping(cls, labels: Mapping[str, str], group_col: str = "Group") -> "SampleMetadata":
        return cls(pd.DataFrame({group_col: pd.Series(labels)}), group_col=group_col)

    @property
    def groups(self) -> pd.Series:
        return self.data[self.group_col].astype(str)

    @property
    def sample_ids(self) -> List[str]:
        return self.data.index.tolist()

    def group_labels(self) -> List[str]:
        return sorted(self.groups.unique().tolist())

    def group_sizes(self) -> Dict[str, int]:
        return self.groups.value_counts().to_dict()

    def reindex(self, sample_ids) -> "SampleMetadata":
        return SampleMetadata(self.data.loc[list(sample_ids)], self.group_col)


def align_samples(table: FeatureTable, metadata: SampleMetadata) -> SampleMetadata:
    """
    Check that table columns and metadata rows cover the same samples.

    Returns the metadata reordered to the table's sample order.
    """
    in_table = set(table.sample_ids)
    in_meta = set(metadata.sample_ids)
    missing_meta = sorted(in_table - in_meta)
    missing_table = sorted(in_meta - in_table)
    if missing_meta or missing_table:
        parts = []
        if missing_meta:
            parts.append(f"samples without metadata: {missing_meta}")
        if missing_table:
            parts.append(f"metadata entries without a table column: {missing_table}")
        raise InvalidInputError("Sample join failed; " + "; ".join(parts))
    logger.debug(f"Aligned {len(in_table)} samples between table and metadata")
    return metadata.reindex(table.sample_ids)


def aggregate_by_taxonomy(table: FeatureTable, mapping: Mapping[str, str],
                          rank_name: Optional[str] = None) -> FeatureTable:
    """
    Sum RAW counts of features that share a higher-rank label.

    Every feature must be present in ``mapping``.
    """
    table.require_kind(CompositionKind.RAW, operation="Taxonomic aggregation")
    missing = [f for f in table.feature_ids if f not in mapping]
    if missing:
        raise InvalidInputError(f"Features missing from the taxonomy map: {missing}")
    labels = pd.Series({f: mapping[f] for f in table.feature_ids})
    agg = table.data.groupby(labels, sort=True).sum()
    agg.index.name = rank_name
    logger.info(f"Aggregated {table.shape[0]} features into {agg.shape[0]} {rank_name or 'groups'}")
    return FeatureTable(agg, CompositionKind.RAW)
