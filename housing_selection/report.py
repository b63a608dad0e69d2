"""
Report generation: JSON results and a self-contained HTML report.
"""

import html
import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Dict

import numpy as np
import pandas as pd

from housing_selection.modeling import coefficient_table, model_summary

logger = logging.getLogger(__name__)


def to_serializable(obj):
    """Convert numpy / pandas values to plain Python types for JSON."""
    if isinstance(obj, dict):
        return {str(k): to_serializable(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [to_serializable(i) for i in obj]
    elif isinstance(obj, pd.DataFrame):
        return to_serializable(obj.reset_index().to_dict(orient="records"))
    elif isinstance(obj, pd.Series):
        return to_serializable(obj.to_dict())
    elif isinstance(obj, np.ndarray):
        return to_serializable(obj.tolist())
    elif isinstance(obj, (np.bool_, bool)):
        return bool(obj)
    elif isinstance(obj, np.integer):
        return int(obj)
    elif isinstance(obj, (np.floating, float)):
        value = float(obj)
        return value if np.isfinite(value) else None
    elif isinstance(obj, Path):
        return str(obj)
    return obj


def summarize_result(result) -> Dict:
    """Plain-dict view of an AnalysisResult."""
    selection = result.selection
    refinement = result.refinement
    return {
        "timestamp": result.timestamp,
        "settings": result.settings.model_dump(),
        "data": {
            "n_train": len(result.split.X_train),
            "n_test": len(result.split.X_test),
            "n_candidate_predictors": len(result.split.predictors),
        },
        "selection": {
            "n_resamples": selection.n_resamples,
            "threshold": selection.threshold,
            "selected": selection.selected,
            "alpha_median": float(np.median(selection.alphas)),
            "tally": selection.tally,
        },
        "models": {name: model_summary(m) for name, m in result.models.items()},
        "coefficients": {
            name: coefficient_table(m) for name, m in result.models.items()
        },
        "residual_diagnostics": result.diagnostics,
        "boxcox": result.boxcox,
        "vif": result.vif,
        "influence": result.influence,
        "interactions": {
            "alpha": refinement.alpha,
            "significant": [f"{a}:{b}" for a, b in refinement.significant],
            "screening": refinement.screening,
            "joint_test": refinement.joint_test.as_dict() if refinement.joint_test else None,
        },
        "test_metrics": result.test_metrics,
        "plots": result.plots,
    }


def save_results(results: Dict, path) -> Path:
    """Save results to JSON."""
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    with open(out, "w") as f:
        json.dump(to_serializable(results), f, indent=2)
    logger.info(f"Results saved to {out}")
    return out


def _table(df: pd.DataFrame, float_format: str = "{:,.4f}") -> str:
    return df.to_html(
        classes="table",
        border=0,
        float_format=lambda v: float_format.format(v),
        na_rep="",
    )


def _dict_table(values: Dict) -> str:
    return _table(pd.DataFrame({"value": pd.Series(values, dtype=object)}))


def _section(title: str, body: str) -> str:
    return f"<section>\n<h2>{html.escape(title)}</h2>\n{body}\n</section>\n"


def render_report(result, path) -> Path:
    """Write an HTML report of the analysis.

    Plots are linked relative to the report file so the output directory
    can be moved as a whole.
    """
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)

    selection = result.selection
    refinement = result.refinement
    sections = []

    sections.append(_section(
        "Data",
        _dict_table({
            "response": result.split.response,
            "training rows": len(result.split.X_train),
            "test rows": len(result.split.X_test),
            "candidate predictors": len(result.split.predictors),
        }),
    ))

    selection_body = (
        f"<p>{selection.n_resamples} bootstrap resamples; predictors kept when their lasso "
        f"coefficient is nonzero in at least {selection.threshold:.0%} of them. "
        f"Median cross-validated alpha: {np.median(selection.alphas):.4g}.</p>\n"
        + _table(selection.tally)
    )
    sections.append(_section("Bootstrap lasso selection", selection_body + _plot(result, "selection", out)))

    summaries = pd.DataFrame([model_summary(m) for m in result.models.values()]).set_index("name")
    sections.append(_section("Model fit", _table(summaries)))

    for name, model in result.models.items():
        body = _table(coefficient_table(model))
        if name in result.diagnostics:
            body += "<h3>Residual diagnostics</h3>\n" + _dict_table(result.diagnostics[name])
        body += _plot(result, f"residuals_{name}", out)
        sections.append(_section(f"Model: {name}", body))

    boxcox_body = _dict_table(result.boxcox) + _plot(result, "boxcox", out)
    sections.append(_section("Box-Cox transformation", boxcox_body))

    sections.append(_section(
        "Collinearity and influence",
        _table(result.vif.to_frame()) + _dict_table(result.influence),
    ))

    if refinement.screening.empty:
        interaction_body = "<p>No candidate interactions were tested.</p>"
    else:
        interaction_body = _table(refinement.screening)
    if refinement.joint_test is not None:
        interaction_body += "<h3>Joint partial F-test</h3>\n" + _dict_table(refinement.joint_test.as_dict())
    else:
        interaction_body += f"<p>No interaction significant at alpha = {refinement.alpha}.</p>"
    sections.append(_section("Interaction terms (partial F-tests)", interaction_body))

    sections.append(_section("Held-out test metrics", _table(result.test_metrics, "{:,.2f}")))

    document = (
        "<!DOCTYPE html>\n<html>\n<head>\n<meta charset=\"utf-8\">\n"
        "<title>Housing price analysis</title>\n"
        "<style>body{font-family:sans-serif;margin:2em;max-width:1100px}"
        ".table{border-collapse:collapse;margin:0.5em 0}"
        ".table td,.table th{padding:2px 8px;border-bottom:1px solid #ddd;text-align:right}"
        "img{max-width:100%}</style>\n</head>\n<body>\n"
        f"<h1>Housing price analysis</h1>\n<p>Generated {html.escape(result.timestamp)}</p>\n"
        + "".join(sections)
        + "</body>\n</html>\n"
    )
    out.write_text(document, encoding="utf-8")
    logger.info(f"Report written to {out}")
    return out


def _plot(result, key: str, report_path: Path) -> str:
    plot_path = result.plots.get(key)
    if not plot_path:
        return ""
    rel = os.path.relpath(Path(plot_path), report_path.parent)
    return f'<p><img src="{html.escape(Path(rel).as_posix())}" alt="{html.escape(key)}"></p>\n'


def timestamp() -> str:
    return datetime.now().isoformat(timespec="seconds")
