"""
Bootstrap lasso variable selection and OLS refinement for housing prices.

Modules:
- data: loading, design matrix, train/test split
- bootstrap: bootstrap lasso selection
- modeling: OLS fits on the selected predictors
- diagnostics: residual checks, Box-Cox, VIF, influence, plots
- interactions: partial F-tests for interaction terms
- evaluate: held-out RMSE with log back-transformation
- pipeline: the end-to-end run and CLI
"""

from housing_selection.bootstrap import BootstrapSelection, bootstrap_lasso_selection
from housing_selection.config import AnalysisSettings, get_settings
from housing_selection.exceptions import AnalysisError, DataValidationError, SelectionError
from housing_selection.pipeline import AnalysisResult, run_analysis

__version__ = "0.1.0"

__all__ = [
    "AnalysisError",
    "AnalysisResult",
    "AnalysisSettings",
    "BootstrapSelection",
    "DataValidationError",
    "SelectionError",
    "bootstrap_lasso_selection",
    "get_settings",
    "run_analysis",
    "__version__",
]
