"""
CSV loading utilities for item response data.
"""

from dataclasses import dataclass
from pathlib import Path

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from irtfit.core.constants import MISSING_VALUE
from irtfit.core.data_models import ResponseMatrix

GROUP_COLUMN = "group"


@dataclass(frozen=True)
class LoadedResponses:
    item_names: tuple[str, ...]
    response_matrix: ResponseMatrix
    groups: NDArray[np.str_] | None


def load_csv_to_response_matrix(path: Path) -> LoadedResponses:
    """Load a CSV file with item responses.

    Expected CSV layout: one column per item holding integer category codes,
    blank cells for missing responses, and an optional ``group`` column with
    group labels for multiple-group models.

    Raises:
        ValueError: If the CSV has no item columns or non-integer codes.
    """
    df = pd.read_csv(path)

    groups: NDArray[np.str_] | None = None
    if GROUP_COLUMN in df.columns:
        groups = df[GROUP_COLUMN].astype(str).to_numpy()
        df = df.drop(columns=[GROUP_COLUMN])

    if df.shape[1] == 0:
        raise ValueError("CSV must have at least one item column")

    values = df.to_numpy(dtype=np.float64)
    observed = values[~np.isnan(values)]
    if not np.all(observed == np.round(observed)):
        raise ValueError("Item responses must be integer category codes")

    responses = np.where(np.isnan(values), MISSING_VALUE, values).astype(
        np.int64
    )

    return LoadedResponses(
        item_names=tuple(str(c) for c in df.columns),
        response_matrix=ResponseMatrix(responses=responses),
        groups=groups,
    )
