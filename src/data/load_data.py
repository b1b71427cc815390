"""Loading, validation and label encoding for the diabetes dataset."""

import logging
from pathlib import Path
from typing import List, Tuple

import pandas as pd
import pandera as pa
from pandera import Column, DataFrameSchema

from src.config.constants import (
    COLUMN_NAMES,
    LABEL_LEVELS,
    LABEL_MAPPING,
    PREDICTOR_COLUMNS,
    TARGET_COLUMN,
)
from src.errors import DataLoadError

logger = logging.getLogger(__name__)


class DiabetesDataValidator:
    """Validates the raw (renamed, not yet encoded) observation table."""

    REQUIRED_COLUMNS = COLUMN_NAMES

    def __init__(self):
        """Initialize validator with schema."""
        self.schema = DataFrameSchema(
            {
                "timesPregnant": Column(float, checks=[pa.Check.ge(0)], nullable=False, coerce=True),
                "plasmaGlucose": Column(float, checks=[pa.Check.ge(0)], nullable=False, coerce=True),
                "diastolicPressure": Column(float, checks=[pa.Check.ge(0)], nullable=False, coerce=True),
                "tricepThickness": Column(float, checks=[pa.Check.ge(0)], nullable=False, coerce=True),
                "serumInsulin": Column(float, checks=[pa.Check.ge(0)], nullable=False, coerce=True),
                "bmi": Column(float, checks=[pa.Check.ge(0)], nullable=False, coerce=True),
                "pedigreeFunction": Column(float, checks=[pa.Check.ge(0)], nullable=False, coerce=True),
                "age": Column(float, checks=[pa.Check.ge(0), pa.Check.le(120)], nullable=False, coerce=True),
                TARGET_COLUMN: Column(int, checks=[pa.Check.isin([0, 1])], nullable=False, coerce=True),
            },
            strict=True,
        )

    def validate_schema(self, df: pd.DataFrame) -> Tuple[pd.DataFrame, List[str]]:
        """Validate and coerce the dataframe.

        Checks for:
        - Missing or unexpected columns
        - Values that cannot be read as numbers
        - Empty cells (rows with too few fields)
        - Value constraints (non-negative predictors, age <= 120, 0/1 class)

        Args:
            df: Renamed raw dataframe

        Returns:
            Tuple of (coerced_dataframe, error_messages); the dataframe is
            ``None`` when validation fails
        """
        errors = []

        missing_cols = [col for col in self.REQUIRED_COLUMNS if col not in df.columns]
        if missing_cols:
            errors.append(f"Missing required columns: {missing_cols}")
            return None, errors

        try:
            validated = self.schema.validate(df[self.REQUIRED_COLUMNS], lazy=True)
            return validated, []
        except pa.errors.SchemaErrors as e:
            for _, row in e.failure_cases.iterrows():
                errors.append(
                    f"Column '{row['column']}' failed check '{row['check']}' "
                    f"at row {row['index']} (value: {row['failure_case']})"
                )
            return None, errors


def read_observations(data_path: Path, has_header: bool = True) -> pd.DataFrame:
    """Read the CSV and rename its columns positionally.

    Args:
        data_path: Path to the comma-separated input file
        has_header: Whether the first line is a header row to discard

    Returns:
        Raw dataframe with the canonical column names

    Raises:
        DataLoadError: File missing, unparsable or with the wrong column count
    """
    data_path = Path(data_path)
    if not data_path.exists():
        raise DataLoadError(f"Input file not found: {data_path}")

    try:
        df = pd.read_csv(data_path, header=0 if has_header else None)
    except pd.errors.EmptyDataError as e:
        raise DataLoadError(f"Input file is empty: {data_path}") from e
    except pd.errors.ParserError as e:
        raise DataLoadError(f"Malformed rows in {data_path}: {e}") from e

    if df.shape[1] != len(COLUMN_NAMES):
        raise DataLoadError(
            f"Expected {len(COLUMN_NAMES)} columns, found {df.shape[1]} in {data_path}"
        )
    if df.empty:
        raise DataLoadError(f"No data rows in {data_path}")

    df.columns = COLUMN_NAMES
    return df


def encode_labels(df: pd.DataFrame) -> pd.DataFrame:
    """Map the 0/1 class column to the two-level categorical label.

    Args:
        df: Validated dataframe with an integer class column

    Returns:
        Copy of ``df`` with ``diabetes`` as a pandas Categorical
    """
    encoded = df.copy()
    encoded[TARGET_COLUMN] = pd.Categorical(
        encoded[TARGET_COLUMN].map(LABEL_MAPPING), categories=LABEL_LEVELS
    )
    return encoded


def load_observations(data_path: Path, has_header: bool = True) -> pd.DataFrame:
    """Load, validate and encode the observation table.

    Args:
        data_path: Path to the input CSV
        has_header: Whether the first line is a header row

    Returns:
        Observation table: 8 float predictors and the categorical label

    Raises:
        DataLoadError: On any read or schema failure
    """
    raw = read_observations(data_path, has_header=has_header)

    validator = DiabetesDataValidator()
    validated, errors = validator.validate_schema(raw)
    if validated is None:
        raise DataLoadError(
            f"{len(errors)} schema violation(s) in {data_path}: {errors[:5]}", errors=errors
        )

    observations = encode_labels(validated)
    logger.info(
        f"Loaded {len(observations)} rows from {data_path} "
        f"({observations[TARGET_COLUMN].value_counts().to_dict()})"
    )
    return observations[PREDICTOR_COLUMNS + [TARGET_COLUMN]]
