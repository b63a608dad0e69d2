"""
Data loading and preparation for the housing price analysis.

Turns a raw housing records CSV into a numeric design matrix:
- numeric columns are kept as-is
- categorical columns are one-hot encoded (first level dropped)
- column names are sanitised so they can appear in regression formulas
- rows with missing values are dropped
"""

import keyword
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import pandas as pd
from pandas.api.types import is_numeric_dtype
from sklearn.model_selection import train_test_split

from housing_selection.exceptions import DataValidationError

logger = logging.getLogger(__name__)

FORMULA_RESERVED = {"C", "I", "Q", "np"}


@dataclass
class DatasetSplit:
    """Train/test partition of the design matrix.

    Attributes:
        X_train, X_test: Predictor frames
        y_train, y_test: Response series
        response: Name of the response column
        groups: Maps each predictor to the source column it was derived from
    """

    X_train: pd.DataFrame
    X_test: pd.DataFrame
    y_train: pd.Series
    y_test: pd.Series
    response: str
    groups: Dict[str, str] = field(default_factory=dict)

    @property
    def predictors(self) -> List[str]:
        return list(self.X_train.columns)

    @property
    def train_data(self) -> pd.DataFrame:
        """Training predictors and response in one frame (for formula fits)."""
        return self.X_train.assign(**{self.response: self.y_train})

    @property
    def test_data(self) -> pd.DataFrame:
        return self.X_test.assign(**{self.response: self.y_test})


def sanitize_name(name: str) -> str:
    """Make a column name usable as a formula term."""
    clean = re.sub(r"\W+", "_", str(name)).strip("_")
    if not clean:
        clean = "col"
    if clean[0].isdigit():
        clean = f"x_{clean}"
    # formula builtins and Python keywords cannot be bare terms
    if keyword.iskeyword(clean) or clean in FORMULA_RESERVED:
        clean = f"{clean}_"
    return clean


def load_housing_data(
    path: str,
    response: str,
    usecols: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """Load housing records from CSV.

    Args:
        path: CSV file path
        response: Response column that must be present and numeric
        usecols: Optional subset of columns to read

    Returns:
        Raw housing records

    Raises:
        FileNotFoundError: If the file does not exist
        DataValidationError: If the response column is missing or non-numeric
    """
    csv_path = Path(path)
    if not csv_path.exists():
        raise FileNotFoundError(f"Housing data not found: {csv_path}")

    logger.info(f"Loading housing data from {csv_path}")
    df = pd.read_csv(csv_path, usecols=list(usecols) if usecols else None)

    if response not in df.columns:
        raise DataValidationError(
            f"Response column '{response}' not in data (columns: {list(df.columns)})"
        )
    if not is_numeric_dtype(df[response]):
        raise DataValidationError(f"Response column '{response}' must be numeric")

    logger.info(f"Loaded {len(df)} records, {len(df.columns)} columns")
    return df


def build_design_matrix(
    df: pd.DataFrame,
    response: str,
    categorical_columns: Sequence[str] = (),
    drop_columns: Sequence[str] = (),
) -> Tuple[pd.DataFrame, pd.Series, Dict[str, str]]:
    """Build the predictor matrix and response vector.

    Non-numeric columns that are not listed as categorical are encoded as
    categorical anyway. Constant columns are dropped.

    Args:
        df: Raw housing records
        response: Response column
        categorical_columns: Columns to one-hot encode
        drop_columns: Columns to exclude (ignored if absent)

    Returns:
        Tuple of (X, y, groups) where groups maps each predictor column to
        the sanitised name of the source column it came from

    Raises:
        DataValidationError: If no rows or no predictors remain
    """
    if response not in df.columns:
        raise DataValidationError(f"Response column '{response}' not in data")

    present_drops = [c for c in drop_columns if c in df.columns and c != response]
    work = df.drop(columns=present_drops)

    n_before = len(work)
    work = work.dropna()
    if len(work) < n_before:
        logger.info(f"Dropped {n_before - len(work)} rows with missing values")
    if work.empty:
        raise DataValidationError("No complete rows left after dropping missing values")

    y = work.pop(response).astype(float)

    categoricals = [c for c in categorical_columns if c in work.columns]
    inferred = [
        c for c in work.columns
        if c not in categoricals and not is_numeric_dtype(work[c])
    ]
    if inferred:
        logger.info(f"Treating non-numeric columns as categorical: {inferred}")
    categoricals.extend(inferred)

    groups: Dict[str, str] = {}
    for col in work.columns:
        if col not in categoricals:
            groups[sanitize_name(col)] = sanitize_name(col)

    if categoricals:
        for col in categoricals:
            levels = sorted(work[col].astype(str).unique())
            for level in levels[1:]:
                groups[sanitize_name(f"{col}_{level}")] = sanitize_name(col)
        work[categoricals] = work[categoricals].astype(str)
        work = pd.get_dummies(work, columns=categoricals, drop_first=True, dtype=int)

    work.columns = [sanitize_name(c) for c in work.columns]
    if work.columns.duplicated().any():
        dupes = sorted(set(work.columns[work.columns.duplicated()]))
        raise DataValidationError(f"Column names collide after sanitising: {dupes}")

    work = work.astype(float)
    constant = [c for c in work.columns if work[c].nunique() <= 1]
    if constant:
        logger.info(f"Dropping constant columns: {constant}")
        work = work.drop(columns=constant)

    if work.shape[1] == 0:
        raise DataValidationError("No predictors left after preparing the design matrix")

    groups = {c: groups.get(c, c) for c in work.columns}
    y.name = sanitize_name(response)
    logger.info(f"Design matrix: {len(work)} rows x {work.shape[1]} predictors")
    return work, y, groups


def split_train_test(
    X: pd.DataFrame,
    y: pd.Series,
    test_size: float = 0.2,
    random_state: int = 42,
    groups: Optional[Dict[str, str]] = None,
) -> DatasetSplit:
    """Split the design matrix into train and test partitions."""
    X_train, X_test, y_train, y_test = train_test_split(
        X, y, test_size=test_size, random_state=random_state
    )
    logger.info(f"Train/test split: {len(X_train)} / {len(X_test)} rows")
    return DatasetSplit(
        X_train=X_train,
        X_test=X_test,
        y_train=y_train,
        y_test=y_test,
        response=str(y.name),
        groups=dict(groups or {c: c for c in X.columns}),
    )
