"""
Interaction-term refinement via partial F-tests.

Each pairwise product of the selected predictors is added, one at a time,
to the main-effects model and tested against it with a partial F-test.
Interactions significant at `alpha` are then added together and the
combined model is tested against the main-effects model once more.
"""

import itertools
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
from statsmodels.stats.anova import anova_lm

from housing_selection.modeling import FittedModel, Interaction, fit_ols, interaction_term

logger = logging.getLogger(__name__)


@dataclass
class PartialFTest:
    """Partial F-test of a full model against a nested reduced model."""

    f_statistic: float
    p_value: float
    df_diff: int
    ssr_reduced: float
    ssr_full: float
    added_terms: List[str] = field(default_factory=list)

    def is_significant(self, alpha: float) -> bool:
        return self.p_value < alpha

    def as_dict(self) -> Dict:
        return {
            "added_terms": list(self.added_terms),
            "f_statistic": self.f_statistic,
            "p_value": self.p_value,
            "df_diff": self.df_diff,
            "ssr_reduced": self.ssr_reduced,
            "ssr_full": self.ssr_full,
        }


@dataclass
class InteractionRefinement:
    """Main-effects model, interaction-refined model and the tests between them."""

    base: FittedModel
    refined: FittedModel
    screening: pd.DataFrame
    significant: List[Interaction]
    alpha: float
    joint_test: Optional[PartialFTest] = None


def candidate_interactions(
    predictors: Sequence[str],
    groups: Optional[Dict[str, str]] = None,
    max_terms: Optional[int] = None,
) -> List[Interaction]:
    """All pairwise interactions of the predictors.

    Dummies derived from the same categorical column are never paired: their
    product is identically zero.
    """
    groups = groups or {}
    pairs = [
        (a, b)
        for a, b in itertools.combinations(predictors, 2)
        if groups.get(a, a) != groups.get(b, b)
    ]
    if max_terms is not None and len(pairs) > max_terms:
        logger.info(f"Capping candidate interactions at {max_terms} of {len(pairs)}")
        pairs = pairs[:max_terms]
    return pairs


def partial_f_test(reduced: FittedModel, full: FittedModel) -> PartialFTest:
    """Partial F-test of `full` against the nested `reduced` model.

    Raises:
        ValueError: If the models are not nested
    """
    if reduced.log_response != full.log_response:
        raise ValueError("Models must share the same response scale")
    if int(reduced.results.nobs) != int(full.results.nobs):
        raise ValueError("Models must be fit on the same observations")
    if full.results.df_model <= reduced.results.df_model:
        raise ValueError(
            f"'{full.name}' has no more parameters than '{reduced.name}'; not a nested extension"
        )
    missing = [t for t in reduced.results.params.index if t not in full.results.params.index]
    if missing:
        raise ValueError(f"'{full.name}' lacks terms of '{reduced.name}': {missing}")

    table = anova_lm(reduced.results, full.results)
    row = table.iloc[1]
    added = [t for t in full.results.params.index if t not in reduced.results.params.index]
    return PartialFTest(
        f_statistic=float(row["F"]),
        p_value=float(row["Pr(>F)"]),
        df_diff=int(row["df_diff"]),
        ssr_reduced=float(table.iloc[0]["ssr"]),
        ssr_full=float(row["ssr"]),
        added_terms=added,
    )


def screen_interactions(
    data: pd.DataFrame,
    response: str,
    predictors: Sequence[str],
    candidates: Sequence[Interaction],
    alpha: float = 0.05,
    log_response: bool = False,
    base: Optional[FittedModel] = None,
) -> pd.DataFrame:
    """Test each candidate interaction against the main-effects model.

    Returns:
        DataFrame with one row per tested interaction (term, F, p_value,
        df_diff, significant), sorted by p-value
    """
    if base is None:
        base = fit_ols(data, response, predictors, log_response=log_response, name="main_effects")

    rows = []
    for pair in candidates:
        product = data[pair[0]] * data[pair[1]]
        if product.nunique() <= 1:
            logger.warning(f"Skipping {interaction_term(pair)}: product is constant")
            continue

        full = fit_ols(
            data, response, predictors,
            interactions=[pair],
            log_response=log_response,
            name=f"with_{interaction_term(pair)}",
        )
        if full.results.df_model <= base.results.df_model:
            logger.warning(f"Skipping {interaction_term(pair)}: collinear with main effects")
            continue

        test = partial_f_test(base, full)
        rows.append({
            "term": interaction_term(pair),
            "first": pair[0],
            "second": pair[1],
            "f_statistic": test.f_statistic,
            "p_value": test.p_value,
            "df_diff": test.df_diff,
            "significant": test.is_significant(alpha),
        })

    columns = ["term", "first", "second", "f_statistic", "p_value", "df_diff", "significant"]
    screening = pd.DataFrame(rows, columns=columns)
    if not screening.empty:
        screening = screening.sort_values("p_value", kind="mergesort").reset_index(drop=True)
    n_significant = int(screening["significant"].sum()) if not screening.empty else 0
    logger.info(
        f"Screened {len(screening)} interactions: {n_significant} significant at alpha={alpha:.3f}"
    )
    return screening


def refine_with_interactions(
    data: pd.DataFrame,
    response: str,
    predictors: Sequence[str],
    groups: Optional[Dict[str, str]] = None,
    alpha: float = 0.05,
    log_response: bool = False,
    max_terms: Optional[int] = None,
    base: Optional[FittedModel] = None,
) -> InteractionRefinement:
    """Add significant pairwise interactions to the main-effects model.

    An already fitted main-effects model can be passed as `base`; it must be
    fit on `data` with the same predictors and response scale.
    """
    logger.info("=" * 60)
    logger.info(f"INTERACTION REFINEMENT (alpha={alpha:.3f})")
    logger.info("=" * 60)

    if base is None:
        base = fit_ols(data, response, predictors, log_response=log_response, name="main_effects")
    elif (
        base.log_response != log_response
        or list(base.predictors) != list(predictors)
        or base.interactions
    ):
        raise ValueError(f"Base model '{base.name}' does not match the requested main effects")
    candidates = candidate_interactions(predictors, groups, max_terms)
    screening = screen_interactions(
        data, response, predictors, candidates,
        alpha=alpha, log_response=log_response, base=base,
    )

    significant: List[Interaction] = []
    if not screening.empty:
        hits = screening[screening["significant"]]
        significant = list(zip(hits["first"], hits["second"]))

    if not significant:
        logger.info("No interaction improves the main-effects model")
        return InteractionRefinement(
            base=base, refined=base, screening=screening,
            significant=[], alpha=alpha, joint_test=None,
        )

    refined = fit_ols(
        data, response, predictors,
        interactions=significant,
        log_response=log_response,
        name="with_interactions",
    )
    joint = partial_f_test(base, refined)
    logger.info(
        f"Joint partial F-test for {len(significant)} interactions: "
        f"F={joint.f_statistic:.3f}, p={joint.p_value:.3g}"
    )
    if not np.isfinite(joint.p_value):
        logger.warning("Joint partial F-test p-value is not finite")
    return InteractionRefinement(
        base=base,
        refined=refined,
        screening=screening,
        significant=significant,
        alpha=alpha,
        joint_test=joint,
    )
