"""Tests for feature tables, metadata and keyed joins."""

import numpy as np
import pandas as pd
import pytest

from compositional_tools.core.tables import (
    CompositionKind,
    FeatureTable,
    SampleMetadata,
    aggregate_by_taxonomy,
    align_samples,
    to_clr,
    to_relative,
)
from compositional_tools.errors import InvalidInputError


@pytest.fixture
def table():
    return FeatureTable(pd.DataFrame(
        {"s1": [1, 2, 3], "s2": [0, 4, 4], "s3": [5, 0, 5]},
        index=["otu1", "otu2", "otu3"],
    ))


def test_negative_counts_rejected():
    with pytest.raises(InvalidInputError, match="s2"):
        FeatureTable(pd.DataFrame({"s1": [1, 2], "s2": [-1, 2]}, index=["a", "b"]))


def test_non_numeric_rejected():
    with pytest.raises(InvalidInputError, match="s1"):
        FeatureTable(pd.DataFrame({"s1": ["x", "y"]}, index=["a", "b"]))


def test_duplicate_features_rejected():
    with pytest.raises(InvalidInputError, match="Duplicate feature"):
        FeatureTable(pd.DataFrame({"s1": [1, 2]}, index=["a", "a"]))


def test_to_relative_sums_to_one(table):
    rel = to_relative(table)
    assert rel.kind is CompositionKind.RELATIVE
    np.testing.assert_allclose(rel.data.sum(axis=0), 1.0)


def test_to_relative_rejects_empty_sample():
    t = FeatureTable(pd.DataFrame({"s1": [1, 2], "empty": [0, 0]}, index=["a", "b"]))
    with pytest.raises(InvalidInputError, match="empty"):
        to_relative(t)


def test_kind_transitions(table):
    clr = to_clr(table, 0.65)
    assert clr.kind is CompositionKind.CLR
    with pytest.raises(InvalidInputError, match="requires a raw"):
        to_relative(clr)


def test_align_samples_reorders_metadata(table):
    meta = SampleMetadata.from_mapping({"s3": "b", "s1": "a", "s2": "a"})
    aligned = align_samples(table, meta)
    assert aligned.sample_ids == ["s1", "s2", "s3"]


def test_align_samples_reports_missing_keys(table):
    meta = SampleMetadata.from_mapping({"s1": "a", "s2": "b", "s9": "b"})
    with pytest.raises(InvalidInputError) as exc:
        align_samples(table, meta)
    assert "s3" in str(exc.value)
    assert "s9" in str(exc.value)


def test_metadata_needs_two_groups():
    with pytest.raises(InvalidInputError, match="at least 2 groups"):
        SampleMetadata.from_mapping({"s1": "a", "s2": "a"})


def test_metadata_missing_group_column():
    with pytest.raises(InvalidInputError, match="Treatment"):
        SampleMetadata(pd.DataFrame({"Group": ["a", "b"]}, index=["s1", "s2"]), group_col="Treatment")


def test_aggregate_by_taxonomy(table):
    agg = aggregate_by_taxonomy(table, {"otu1": "Bacteroides", "otu2": "Bacteroides", "otu3": "Prevotella"},
                                rank_name="genus")
    assert agg.feature_ids == ["Bacteroides", "Prevotella"]
    assert agg.data.loc["Bacteroides", "s2"] == 4
    assert agg.data.loc["Bacteroides", "s1"] == 3


def test_aggregate_requires_complete_mapping(table):
    with pytest.raises(InvalidInputError, match="otu3"):
        aggregate_by_taxonomy(table, {"otu1": "g1", "otu2": "g1"})
