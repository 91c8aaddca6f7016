# compositional_tools/analysis/classifier.py
"""
Random-forest feature ranking. Hypothesis-generating only: the output is a
held-out confusion matrix and an importance ranking, never p-values.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np
import pandas as pd
from sklearn.ensemble import RandomForestClassifier
from sklearn.inspection import permutation_importance
from sklearn.metrics import accuracy_score, confusion_matrix
from sklearn.model_selection import train_test_split

from compositional_tools.core.tables import (
    CompositionKind,
    FeatureTable,
    SampleMetadata,
    align_samples,
    to_relative,
)
from compositional_tools.errors import InsufficientDataError, InvalidInputError

logger = logging.getLogger(__name__)


@dataclass
class ClassifierResult:
    model: RandomForestClassifier
    confusion_matrix: pd.DataFrame  # rows = true label, columns = predicted label
    accuracy: float
    importances: pd.DataFrame  # columns feature, importance; sorted descending
    train_samples: List[str] = field(default_factory=list)
    test_samples: List[str] = field(default_factory=list)


def rank_features(
    table: FeatureTable,
    metadata: SampleMetadata,
    test_size: float = 0.3,
    n_estimators: int = 500,
    seed: Optional[int] = None,
    importance: str = "impurity",
    use_relative: bool = True,
    n_jobs: int = 1,
) -> ClassifierResult:
    """
    Train a random forest on a stratified split and rank features.

    Args:
        table: Feature table (features x samples); RAW tables are converted
            to relative abundance when use_relative is True
        metadata: Group label per sample
        test_size: Fraction of samples held out
        n_estimators: Number of bagged trees
        seed: Controls the split, the bootstrap samples and permutation importance
        importance: 'impurity' (mean decrease in impurity) or 'permutation'
            (mean accuracy drop on the held-out split)
        use_relative: Convert RAW counts to relative abundance first
        n_jobs: Parallel jobs for tree fitting

    Returns:
        ClassifierResult
    """
    if importance not in ("impurity", "permutation"):
        raise InvalidInputError(f"Unknown importance method '{importance}'")
    if not 0 < test_size < 1:
        raise InvalidInputError(f"test_size must be in (0, 1), got {test_size}")

    metadata = align_samples(table, metadata)
    if use_relative and table.kind is CompositionKind.RAW:
        table = to_relative(table)

    X = table.transpose()
    y = metadata.groups.loc[X.index]
    sizes = y.value_counts()
    small = sizes[sizes < 2]
    if not small.empty:
        raise InsufficientDataError(
            f"Stratified split needs at least 2 samples per class; too few in: {small.to_dict()}"
        )
    # Both sides of a stratified split must hold every class
    n_test = math.ceil(test_size * len(y))
    n_train = len(y) - n_test
    if min(n_test, n_train) < len(sizes):
        raise InsufficientDataError(
            f"A {n_train}/{n_test} train/test split of {len(y)} samples cannot hold all "
            f"{len(sizes)} classes {sorted(sizes.index)} on both sides; adjust test_size or add samples"
        )

    X_train, X_test, y_train, y_test = train_test_split(
        X, y, test_size=test_size, stratify=y, random_state=seed
    )
    logger.info(f"Training random forest ({n_estimators} trees) on {len(X_train)} samples, "
                f"testing on {len(X_test)}")

    model = RandomForestClassifier(n_estimators=n_estimators, random_state=seed, n_jobs=n_jobs)
    model.fit(X_train, y_train)
    y_pred = model.predict(X_test)

    labels = sorted(y.unique())
    cm = pd.DataFrame(
        confusion_matrix(y_test, y_pred, labels=labels),
        index=pd.Index(labels, name="true"),
        columns=pd.Index(labels, name="predicted"),
    )
    accuracy = float(accuracy_score(y_test, y_pred))
    logger.info(f"Held-out accuracy: {accuracy:.3f}")

    if importance == "impurity":
        scores = model.feature_importances_
    else:
        perm = permutation_importance(model, X_test, y_test, n_repeats=10,
                                      random_state=seed, n_jobs=n_jobs)
        scores = perm.importances_mean

    importances = pd.DataFrame({"feature": X.columns, "importance": np.asarray(scores, dtype=float)})
    importances = importances.sort_values("importance", ascending=False, kind="mergesort")
    importances = importances.reset_index(drop=True)

    return ClassifierResult(
        model=model,
        confusion_matrix=cm,
        accuracy=accuracy,
        importances=importances,
        train_samples=X_train.index.tolist(),
        test_samples=X_test.index.tolist(),
    )
