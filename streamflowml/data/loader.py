"""
Reading and joining gauge attribute tables
"""

import pandas as pd
from pathlib import Path
from typing import List, Optional, Union
import structlog

from ..exceptions import ConfigurationMismatchError

logger = structlog.get_logger()


class GaugeDataLoader:
    """
    Loads a directory of delimited gauge attribute files into one wide table.

    Every file must carry the key column (``gauge_id`` for CAMELS). Files are
    full-outer-joined on that key so a gauge missing from one file is kept
    with missing values in that file's columns; cleaning decides later
    whether those rows survive.
    """

    def __init__(
        self,
        data_dir: Union[str, Path],
        key_column: str = "gauge_id",
        pattern: str = "*.txt",
        sep: Optional[str] = None
    ):
        """
        Parameters
        ----------
        data_dir : str or Path
            Directory holding the attribute files
        key_column : str, optional
            Column shared by every file
        pattern : str, optional
            Glob pattern selecting files inside ``data_dir``
        sep : str, optional
            Field delimiter; sniffed per file when None
        """
        self.data_dir = Path(data_dir).expanduser()
        self.key_column = key_column
        self.pattern = pattern
        self.sep = sep

    def list_files(self) -> List[Path]:
        """Return the matching files, sorted by name"""
        if not self.data_dir.is_dir():
            raise FileNotFoundError(f"Data directory not found: {self.data_dir}")

        files = sorted(p for p in self.data_dir.glob(self.pattern) if p.is_file())
        if not files:
            raise FileNotFoundError(
                f"No files matching '{self.pattern}' in {self.data_dir}"
            )
        return files

    def read_file(self, path: Union[str, Path]) -> pd.DataFrame:
        """
        Read a single delimited file

        The key column is read as text so identifiers like ``01013500``
        keep their leading zeros.
        """
        path = Path(path)
        read_kwargs = {'dtype': {self.key_column: str}}
        if self.sep is None:
            read_kwargs.update(sep=None, engine='python')
        else:
            read_kwargs['sep'] = self.sep

        df = pd.read_csv(path, **read_kwargs)
        df.columns = [str(c).strip() for c in df.columns]

        if self.key_column not in df.columns:
            raise ConfigurationMismatchError(
                f"Key column '{self.key_column}' not found in {path.name}"
            )

        df[self.key_column] = df[self.key_column].str.strip()
        logger.debug("Read attribute file", file=path.name, rows=len(df), columns=len(df.columns))
        return df

    def load(self) -> pd.DataFrame:
        """
        Read every file and join them on the key column

        Returns
        -------
        pd.DataFrame
            One wide table; the key stays a regular column
        """
        files = self.list_files()
        merged = None

        for path in files:
            df = self.read_file(path)
            if merged is None:
                merged = df
                continue

            overlap = [c for c in df.columns if c != self.key_column and c in merged.columns]
            if overlap:
                logger.warning("Duplicate columns ignored", file=path.name, columns=overlap)
                df = df.drop(columns=overlap)

            merged = merged.merge(df, on=self.key_column, how='outer')

        logger.info(
            "Loaded gauge attributes",
            files=len(files),
            gauges=len(merged),
            columns=len(merged.columns)
        )
        return merged
