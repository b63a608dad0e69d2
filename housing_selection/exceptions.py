"""
Exceptions raised by the housing price analysis.

Library errors (file I/O, solver failures) are not wrapped; these cover the
cases where the analysis itself cannot proceed with the data it was given.
"""


class AnalysisError(Exception):
    """Base class for analysis errors."""


class DataValidationError(AnalysisError):
    """Input data is missing columns, empty, or unsuitable for a step."""


class SelectionError(AnalysisError):
    """Bootstrap lasso selection kept no predictors."""
