"""Shared constants for the diabetes classification analysis."""

# Predictor columns in file order, after positional renaming
PREDICTOR_COLUMNS = [
    "timesPregnant",
    "plasmaGlucose",
    "diastolicPressure",
    "tricepThickness",
    "serumInsulin",
    "bmi",
    "pedigreeFunction",
    "age",
]

# Class column name
TARGET_COLUMN = "diabetes"

COLUMN_NAMES = PREDICTOR_COLUMNS + [TARGET_COLUMN]

# Columns where zero values should be treated as missing (biological impossibility)
ZERO_AS_MISSING_COLUMNS = [
    "plasmaGlucose",
    "diastolicPressure",
    "tricepThickness",
    "serumInsulin",
    "bmi",
]

POSITIVE_LABEL = "Diabetic"
NEGATIVE_LABEL = "notDiabetic"

# Factor levels, alphabetical
LABEL_LEVELS = [POSITIVE_LABEL, NEGATIVE_LABEL]

# Raw 0/1 outcome code to label
LABEL_MAPPING = {1: POSITIVE_LABEL, 0: NEGATIVE_LABEL}

REFERENCE_ROW_COUNT = 768
