"""
Life data file loading (.csv, .txt, .xlsx).

Two layouts are accepted:

* any grid of numbers, read row- or column-wise, every value a failure time;
* two columns ``time, status`` where status is Failure/F/1 or Suspension/S/0.
  A header row is skipped.
"""

import logging
import os

import numpy as np
import pandas as pd

from data_model import Event, LifeDataSet
from errors import DomainError, IncompatibleInputError, InsufficientDataError

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = (".csv", ".txt", ".xlsx")


def read_table(filepath):
    ext = os.path.splitext(filepath)[-1].lower()
    if ext == ".xlsx":
        return pd.read_excel(filepath, header=None)
    if ext in (".csv", ".txt"):
        return pd.read_csv(filepath, header=None)
    raise IncompatibleInputError("Unsupported file format. Please upload .csv, .txt, or .xlsx files.")


def _status_key(value):
    if isinstance(value, (int, float, np.integer, np.floating)) and float(value).is_integer():
        return str(int(value))
    return value


def _as_records(df):
    """(time, status) rows if the table is a two-column status layout, else None."""
    if df.shape[1] != 2:
        return None
    times = pd.to_numeric(df.iloc[:, 0], errors="coerce")
    status = df.iloc[:, 1]
    rows = times.notna() & status.notna()
    if not rows.any():
        return None
    try:
        events = [Event.parse(_status_key(v)) for v in status[rows]]
    except DomainError:
        return None
    return list(zip(times[rows].tolist(), events))


def load_life_data(filepath):
    """Read a data file into a ``LifeDataSet``."""
    df = read_table(filepath)
    records = _as_records(df)
    if records is not None:
        dataset = LifeDataSet.from_records(records)
        logger.info("Loaded %d observations (%d failures) from %s",
                    dataset.n, dataset.n_failures, filepath)
        return dataset

    # Combine all columns into 1D array, supporting row/column formats
    flat_data = pd.to_numeric(pd.Series(df.values.flatten()), errors="coerce").to_numpy(dtype=float)
    data = flat_data[~np.isnan(flat_data)]
    if len(data) == 0:
        raise InsufficientDataError("No valid numeric data found in the file.")
    dataset = LifeDataSet.from_times(data)
    logger.info("Loaded %d failure times from %s", dataset.n, filepath)
    return dataset
