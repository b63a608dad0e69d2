"""
Configuration management for the housing price analysis.

This module provides centralized configuration using Pydantic settings,
supporting environment variables and sensible defaults.

Environment Variables (all prefixed with HOUSING_):
    DATA_PATH: Path to the housing records CSV
    RESPONSE: Name of the response column
    N_BOOTSTRAP: Number of bootstrap resamples (B)
    SURVIVAL_THRESHOLD: Fraction of resamples a coefficient must survive in
    INTERACTION_ALPHA: Significance cutoff for interaction partial F-tests
    N_JOBS: Worker processes for the bootstrap fits (-1 = all cores)
    OUTPUT_DIR: Where the report, JSON results and plots are written
    TRACK_WITH_MLFLOW: Log the run to MLflow
    LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR)
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# King County sales columns treated as categories rather than magnitudes
DEFAULT_CATEGORICAL_COLUMNS = ["waterfront", "view", "condition", "grade"]

# Identifiers and free text that carry no modelling signal
DEFAULT_DROP_COLUMNS = ["id", "date", "zipcode"]


class AnalysisSettings(BaseSettings):
    """Analysis settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_prefix="HOUSING_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Data
    data_path: str = Field(
        default="data/kc_house_data.csv",
        description="Path to the housing records CSV"
    )
    response: str = Field(default="price", description="Response column")
    categorical_columns: List[str] = Field(
        default_factory=lambda: list(DEFAULT_CATEGORICAL_COLUMNS),
        description="Columns one-hot encoded before selection"
    )
    drop_columns: List[str] = Field(
        default_factory=lambda: list(DEFAULT_DROP_COLUMNS),
        description="Columns excluded from the predictor set"
    )

    # Train/test split
    test_size: float = Field(default=0.2, gt=0, lt=1)
    random_state: int = 42

    # Bootstrap lasso selection
    n_bootstrap: int = Field(default=100, ge=1, description="Number of bootstrap resamples")
    cv_folds: int = Field(default=5, ge=2, description="Folds for choosing the lasso alpha")
    lasso_n_alphas: int = Field(default=100, ge=1)
    lasso_max_iter: int = Field(default=10000, ge=1)
    coef_tolerance: float = Field(
        default=1e-8,
        ge=0,
        description="Coefficients with |coef| at or below this count as shrunk to zero"
    )
    survival_threshold: float = Field(
        default=0.9,
        ge=0,
        le=1,
        description="Minimum survival frequency for a predictor to be selected"
    )
    n_jobs: int = Field(default=-1, description="joblib worker count for bootstrap fits")

    # Interaction refinement
    interaction_alpha: float = Field(default=0.05, gt=0, lt=1)
    max_interaction_terms: Optional[int] = Field(
        default=None,
        ge=1,
        description="Cap on candidate pairwise interactions (None = all pairs)"
    )

    # Output
    output_dir: str = "output"
    make_plots: bool = True

    # MLflow integration (optional)
    track_with_mlflow: bool = False
    mlflow_tracking_uri: Optional[str] = Field(
        default=None,
        description="MLflow tracking URI (defaults to a SQLite store under output_dir)"
    )
    mlflow_experiment_name: str = "housing-bootstrap-lasso"

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("n_jobs")
    @classmethod
    def validate_n_jobs(cls, v: int) -> int:
        if v == 0:
            raise ValueError("n_jobs must be a positive count or negative (joblib convention)")
        return v


@lru_cache()
def get_settings() -> AnalysisSettings:
    """Get cached settings instance.

    Returns:
        AnalysisSettings: Analysis settings singleton
    """
    return AnalysisSettings()


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    get_settings.cache_clear()
