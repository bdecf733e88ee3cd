"""
Data validation and cleaning for gauge attribute tables
"""

import pandas as pd
from typing import Dict, List, Optional, Sequence
import structlog

from ..exceptions import ConfigurationMismatchError, DegenerateDataError

logger = structlog.get_logger()


class DataValidator:
    """
    Cleans the joined attribute table into a complete numeric table.

    After ``clean`` the table has one row per gauge (the key is the index),
    every column is numeric and no value is missing.
    """

    def __init__(
        self,
        missing_threshold: float = 0.3,
        expected_predictors: Optional[Sequence[str]] = None,
        strict: bool = True
    ):
        """
        Parameters
        ----------
        missing_threshold : float, optional
            Columns are kept only if their missing fraction is strictly below this
        expected_predictors : sequence of str, optional
            Predictors that must survive cleaning
        strict : bool, optional
            Raise on absent expected predictors instead of only logging them
        """
        if not 0 < missing_threshold <= 1:
            raise ValueError(f"missing_threshold must be in (0, 1], got {missing_threshold}")

        self.missing_threshold = missing_threshold
        self.expected_predictors = list(expected_predictors or [])
        self.strict = strict
        self.validation_stats = self._empty_stats()

    @staticmethod
    def _empty_stats() -> Dict[str, int]:
        return {
            'total_records': 0,
            'removed_duplicates': 0,
            'removed_sparse_columns': 0,
            'removed_non_numeric_columns': 0,
            'removed_incomplete_rows': 0,
        }

    def filter_missing_columns(self, df: pd.DataFrame) -> pd.DataFrame:
        """Keep the columns whose missing fraction is below the threshold"""
        if len(df) == 0:
            return df

        missing_frac = df.isna().mean()
        keep = missing_frac[missing_frac < self.missing_threshold].index
        dropped = [c for c in df.columns if c not in keep]

        if dropped:
            logger.info(
                "Dropped sparse columns",
                threshold=self.missing_threshold,
                columns=dropped
            )
        self.validation_stats['removed_sparse_columns'] += len(dropped)
        return df[list(keep)]

    def clean(
        self,
        df: pd.DataFrame,
        key_column: str = "gauge_id",
        outcome: Optional[str] = None
    ) -> pd.DataFrame:
        """
        Clean the joined table

        Parameters
        ----------
        df : pd.DataFrame
            Joined table with the key as a column
        key_column : str, optional
            Entity key; becomes the index
        outcome : str, optional
            Outcome column that has to survive cleaning

        Returns
        -------
        pd.DataFrame
            Complete numeric table indexed by the key
        """
        if key_column not in df.columns:
            raise ConfigurationMismatchError(f"Key column '{key_column}' not found")

        logger.info("Cleaning attribute table", records=len(df), columns=len(df.columns))
        self.reset_stats()
        original_count = len(df)
        self.validation_stats['total_records'] += original_count

        df = df.dropna(subset=[key_column])
        duplicated = df[key_column].duplicated(keep='first')
        if duplicated.any():
            logger.warning("Duplicate gauge ids dropped", count=int(duplicated.sum()))
        self.validation_stats['removed_duplicates'] += int(duplicated.sum())
        df = df[~duplicated].set_index(key_column)

        df = self.filter_missing_columns(df)

        non_numeric = [c for c in df.columns if not pd.api.types.is_numeric_dtype(df[c])]
        if non_numeric:
            logger.info("Dropped non-numeric columns", columns=non_numeric)
            df = df.drop(columns=non_numeric)
        self.validation_stats['removed_non_numeric_columns'] += len(non_numeric)

        before_rows = len(df)
        df = df.dropna(how='any')
        self.validation_stats['removed_incomplete_rows'] += before_rows - len(df)

        if df.empty or len(df.columns) == 0:
            raise DegenerateDataError(
                f"No complete rows left after cleaning {original_count} records "
                f"(missing threshold {self.missing_threshold})"
            )

        if outcome is not None and outcome not in df.columns:
            raise ConfigurationMismatchError(
                f"Outcome column '{outcome}' missing after cleaning"
            )

        self.check_expected_predictors(df)

        logger.info(
            "Cleaning complete",
            original=original_count,
            final=len(df),
            columns=len(df.columns)
        )
        return df

    def check_expected_predictors(self, df: pd.DataFrame) -> List[str]:
        """
        Compare expected predictors against the cleaned columns

        Returns
        -------
        list of str
            Expected predictors that are absent
        """
        missing = [c for c in self.expected_predictors if c not in df.columns]
        if missing:
            if self.strict:
                raise ConfigurationMismatchError(f"Expected predictors not found: {missing}")
            logger.warning("Expected predictors not found", missing=missing)
        return missing

    def check_data_completeness(self, df: pd.DataFrame) -> Dict[str, float]:
        """Percentage of non-missing values per column"""
        if len(df) == 0:
            return {c: 0.0 for c in df.columns}
        return {c: round(float(v) * 100, 2) for c, v in df.notna().mean().items()}

    def get_validation_summary(self) -> Dict[str, int]:
        return self.validation_stats.copy()

    def reset_stats(self):
        """Zero the counters; ``clean`` starts from fresh counters"""
        self.validation_stats = self._empty_stats()
