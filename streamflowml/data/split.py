"""
Train/test splitting and v-fold resampling

All randomness comes from an explicit ``numpy.random.Generator`` so that a
split or a set of folds is reproducible from its seed alone.
"""

from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

import numpy as np
import pandas as pd
from sklearn.model_selection import KFold, train_test_split
import structlog

logger = structlog.get_logger()


def make_rng(seed: Optional[int] = None) -> np.random.Generator:
    """Create the generator passed to split, fold and grid construction"""
    return np.random.default_rng(seed)


@dataclass(frozen=True, eq=False)
class Split:
    """Disjoint train/test partition of a table"""
    data: pd.DataFrame
    train_rows: np.ndarray
    test_rows: np.ndarray
    prop: float

    @property
    def train(self) -> pd.DataFrame:
        return self.data.iloc[self.train_rows]

    @property
    def test(self) -> pd.DataFrame:
        return self.data.iloc[self.test_rows]

    def __repr__(self) -> str:
        return f"Split(train={len(self.train_rows)}, test={len(self.test_rows)}, total={len(self.data)})"


@dataclass(frozen=True, eq=False)
class Fold:
    """One resample: fit on ``analysis`` rows, score on ``assessment`` rows"""
    id: str
    analysis: np.ndarray
    assessment: np.ndarray


@dataclass(frozen=True, eq=False)
class Resamples:
    """v-fold cross-validation folds over a fixed table"""
    folds: List[Fold]
    n_rows: int

    def __len__(self) -> int:
        return len(self.folds)

    def __iter__(self) -> Iterator[Fold]:
        return iter(self.folds)

    def splits(self) -> List[Tuple[np.ndarray, np.ndarray]]:
        """Folds as (analysis, assessment) pairs, the form scikit-learn takes as ``cv``"""
        return [(f.analysis, f.assessment) for f in self.folds]


def draw_seed(rng: np.random.Generator) -> int:
    """Integer seed for scikit-learn splitters, drawn from ``rng``"""
    return int(rng.integers(np.iinfo(np.int32).max))


def initial_split(
    df: pd.DataFrame,
    prop: float = 0.8,
    rng: Optional[np.random.Generator] = None
) -> Split:
    """
    Randomly partition rows into a training and a testing set

    Parameters
    ----------
    df : pd.DataFrame
        Table to split
    prop : float, optional
        Fraction of rows assigned to training
    rng : np.random.Generator, optional
        Source of randomness; a fresh unseeded generator when omitted

    Returns
    -------
    Split
        ``round(prop * n)`` training rows, the rest for testing
    """
    if not 0 < prop < 1:
        raise ValueError(f"prop must be strictly between 0 and 1, got {prop}")
    if len(df) < 2:
        raise ValueError("At least two rows are needed to split")

    rng = rng if rng is not None else make_rng()
    n = len(df)
    n_train = int(np.floor(prop * n + 0.5))
    n_train = min(max(n_train, 1), n - 1)

    train_rows, test_rows = train_test_split(
        np.arange(n), train_size=n_train, random_state=draw_seed(rng)
    )
    train_rows = np.sort(train_rows)
    test_rows = np.sort(test_rows)

    logger.info("Split data", train=len(train_rows), test=len(test_rows), prop=prop)
    return Split(data=df, train_rows=train_rows, test_rows=test_rows, prop=prop)


def vfold_cv(
    df: pd.DataFrame,
    v: int = 10,
    rng: Optional[np.random.Generator] = None
) -> Resamples:
    """
    Assign every row of ``df`` to exactly one of ``v`` assessment folds

    Fold sizes differ by at most one row.
    """
    n = len(df)
    if v < 2:
        raise ValueError(f"v-fold cross-validation needs at least 2 folds, got {v}")
    if v > n:
        raise ValueError(f"Cannot make {v} folds from {n} rows")

    rng = rng if rng is not None else make_rng()
    kfold = KFold(n_splits=v, shuffle=True, random_state=draw_seed(rng))

    folds = []
    width = len(str(v))
    for i, (analysis, assessment) in enumerate(kfold.split(np.arange(n)), start=1):
        folds.append(Fold(id=f"Fold{i:0{width}d}", analysis=analysis, assessment=assessment))

    logger.debug("Created folds", v=v, rows=n)
    return Resamples(folds=folds, n_rows=n)
