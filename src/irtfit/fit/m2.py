"""
M2 limited-information goodness-of-fit statistic.

Pipeline per group:
1. Quadrature nodes and prior weights for the group's latent distribution
2. Conditional item moments at the nodes; observed and implied moments
3. Jacobian of the implied moments and its orthogonal complement
4. Xi2 weight matrix and the projected quadratic form

Multiple-group models sum the group statistics and moment counts; RMSEA
and its interval are recomputed from the totals. TLI and CFI compare
against an independence model fitted to the same data. Data with missing
values are completed by imputation and the results pooled.
"""

import logging
from dataclasses import dataclass

import numpy as np
from joblib import Parallel, delayed
from numpy.random import Generator
from numpy.typing import NDArray

from irtfit.fit.config import M2Config
from irtfit.fit.data_models import (
    FitResult,
    GroupFitResult,
    PooledFitResult,
    ResidualMatrix,
)
from irtfit.fit.exceptions import (
    InsufficientDegreesOfFreedomError,
    MissingInputError,
    NullModelConvergenceError,
    UnsupportedModelError,
)
from irtfit.fit.imputation import (
    impute_missing,
    pool_fit_results,
    spawn_generators,
)
from irtfit.fit.jacobian import build_jacobian
from irtfit.fit.moments import (
    count_moments,
    evaluate_item_moments,
    expected_moments,
    observed_moments,
)
from irtfit.fit.null_model import with_null_comparison
from irtfit.fit.quadrature import LatentQuadrature, build_quadrature
from irtfit.fit.solver import (
    correlation_residuals,
    m2_quadratic_form,
    orthogonal_complement,
    p_value,
    require_srmsr_eligible,
    rmsea,
    rmsea_confidence_interval,
    srmsr,
    srmsr_eligible,
    suppress_residuals,
)
from irtfit.fit.weights import build_xi2
from irtfit.irt.enums import ItemType
from irtfit.irt.independence import fit_independence_model
from irtfit.irt.items import Item
from irtfit.irt.model import FittedModel

logger = logging.getLogger(__name__)

M2Output = FitResult | PooledFitResult | ResidualMatrix | dict[str, ResidualMatrix]

M2_ITEM_TYPES = frozenset(
    {
        ItemType.DICH,
        ItemType.GRADED,
        ItemType.GPCM,
        ItemType.NOMINAL,
        ItemType.IDEAL,
    }
)


@dataclass(frozen=True)
class GroupContext:
    """
    Everything one group's evaluation needs.

    Attributes:
        index: Position of the group in the model.
        name: Group name.
        items: The group's items.
        quadrature: Nodes and prior weights.
        centered: The group's 0-indexed, complete responses.
        expected_columns: Number of free item parameters the Jacobian
            must have, or None when it cannot be derived independently of
            the items (multiple groups).
    """

    index: int
    name: str
    items: tuple[Item, ...]
    quadrature: LatentQuadrature
    centered: NDArray[np.int64]
    expected_columns: int | None


@dataclass(frozen=True)
class GroupEvaluation:
    """
    Statistic and correlation residuals of one group.

    Attributes:
        name: Group name.
        statistic: Group M2.
        n_moments: Length of the group's moment vector.
        n_respondents: Group sample size.
        residuals: Correlation residual matrix, or None when the item set
            does not admit correlation residuals.
    """

    name: str
    statistic: float
    n_moments: int
    n_respondents: int
    residuals: NDArray[np.float64] | None

    @property
    def srmsr(self) -> float | None:
        if self.residuals is None:
            return None
        return srmsr(self.residuals)


def build_group_contexts(
    model: FittedModel, config: M2Config
) -> list[GroupContext]:
    """One context per group, with quadrature and complete responses."""
    contexts = []
    for g, group in enumerate(model.groups):
        quadrature = build_quadrature(
            group.n_factors,
            config.quadrature,
            distribution=group.distribution,
            latent_grid=group.latent_grid,
        )
        # Equality constraints across groups only enter through nest, so a
        # group's own column count has nothing to be checked against
        expected_columns = None
        if not model.is_multigroup:
            expected_columns = model.nest - model.n_structural_parameters
        contexts.append(
            GroupContext(
                index=g,
                name=group.name,
                items=group.items,
                quadrature=quadrature,
                centered=model.group_data(g).centered(),
                expected_columns=expected_columns,
            )
        )
    return contexts


def evaluate_group(context: GroupContext) -> GroupEvaluation:
    """Compute M2 and correlation residuals for one group."""
    points = context.quadrature.points
    weights = context.quadrature.weights

    observed = observed_moments(context.centered)
    item_moments = evaluate_item_moments(context.items, points)
    expected = expected_moments(item_moments, weights)

    delta = build_jacobian(
        context.items,
        points,
        weights,
        item_moments,
        expected_columns=context.expected_columns,
    )
    deltac = orthogonal_complement(delta)
    xi2 = build_xi2(item_moments, weights)
    statistic = m2_quadratic_form(
        observed.vector - expected.vector,
        deltac,
        xi2,
        observed.n_respondents,
    )

    residuals = None
    if srmsr_eligible(context.items):
        residuals = correlation_residuals(observed, expected)

    logger.debug(
        f"Group {context.name!r}: M2 = {statistic:.4f} over "
        f"{delta.shape[0]} moments"
    )
    return GroupEvaluation(
        name=context.name,
        statistic=statistic,
        n_moments=delta.shape[0],
        n_respondents=observed.n_respondents,
        residuals=residuals,
    )


def group_residuals(context: GroupContext) -> NDArray[np.float64]:
    """Correlation residuals of one group, without the M2 solve."""
    observed = observed_moments(context.centered)
    item_moments = evaluate_item_moments(
        context.items, context.quadrature.points
    )
    expected = expected_moments(item_moments, context.quadrature.weights)
    return correlation_residuals(observed, expected)


def evaluate_groups(
    model: FittedModel, config: M2Config, parallel: Parallel | None = None
) -> list[GroupEvaluation]:
    """Evaluate every group, through ``parallel`` when given."""
    contexts = build_group_contexts(model, config)
    if parallel is None or len(contexts) == 1:
        return [evaluate_group(context) for context in contexts]
    return list(parallel(delayed(evaluate_group)(c) for c in contexts))


def summarize(
    model: FittedModel,
    evaluations: list[GroupEvaluation],
    config: M2Config,
) -> FitResult:
    """
    Combine group evaluations into a FitResult.

    The total statistic is the sum over groups and
    df = Σ n_moments - nest.

    Raises:
        InsufficientDegreesOfFreedomError: If df <= 0.
    """
    statistic = float(sum(e.statistic for e in evaluations))
    n_moments = sum(e.n_moments for e in evaluations)
    n_respondents = sum(e.n_respondents for e in evaluations)
    df = n_moments - model.nest
    if df <= 0:
        raise InsufficientDegreesOfFreedomError(n_moments, model.nest)

    lower, upper = rmsea_confidence_interval(
        statistic, df, n_respondents, config.ci_level
    )
    per_group = None
    result_srmsr = None
    if model.is_multigroup:
        per_group = tuple(
            GroupFitResult(
                group=e.name,
                statistic=e.statistic,
                n_moments=e.n_moments,
                srmsr=e.srmsr,
            )
            for e in evaluations
        )
    else:
        result_srmsr = evaluations[0].srmsr

    return FitResult(
        statistic=statistic,
        df=df,
        p_value=p_value(statistic, df),
        rmsea=rmsea(statistic, df, n_respondents),
        rmsea_lower=lower,
        rmsea_upper=upper,
        ci_level=config.ci_level,
        n_moments=n_moments,
        srmsr=result_srmsr,
        per_group=per_group,
    )


def _item_names(model: FittedModel) -> tuple[str, ...]:
    if model.item_names is not None:
        return model.item_names
    return tuple(f"item_{j + 1}" for j in range(model.n_items))


def _residual_output(
    model: FittedModel, config: M2Config, parallel: Parallel | None
) -> ResidualMatrix | dict[str, ResidualMatrix]:
    for group in model.groups:
        require_srmsr_eligible(group.items)

    contexts = build_group_contexts(model, config)
    if parallel is None or len(contexts) == 1:
        residuals = [group_residuals(context) for context in contexts]
    else:
        residuals = list(
            parallel(delayed(group_residuals)(c) for c in contexts)
        )

    names = _item_names(model)
    matrices = {
        context.name: ResidualMatrix(
            values=suppress_residuals(values, config.suppress),
            item_names=names,
        )
        for context, values in zip(contexts, residuals)
    }
    if model.is_multigroup:
        return matrices
    return matrices[contexts[0].name]


def _compute_complete(
    model: FittedModel,
    config: M2Config,
    null_model: FittedModel | None,
    parallel: Parallel | None,
) -> FitResult | ResidualMatrix | dict[str, ResidualMatrix]:
    if config.residual_matrix:
        return _residual_output(model, config, parallel)

    evaluations = evaluate_groups(model, config, parallel)
    result = summarize(model, evaluations, config)
    logger.info(
        f"M2 = {result.statistic:.4f}, df = {result.df}, "
        f"p = {result.p_value:.4f}, RMSEA = {result.rmsea:.4f}"
    )

    if model.is_discrete:
        if config.calc_null:
            logger.debug("Null model comparison skipped for discrete models")
        return result
    if not config.calc_null:
        return result

    try:
        if null_model is None:
            null_model = fit_independence_model(model)
        null_result = summarize(
            null_model, evaluate_groups(null_model, config, parallel), config
        )
    except NullModelConvergenceError as e:
        if not config.best_effort_null:
            raise
        logger.warning(f"Null model failed, TLI and CFI omitted: {e}")
        return result.model_copy(update={"null_model_error": str(e)})

    logger.debug(
        f"Null model M2 = {null_result.statistic:.4f}, df = {null_result.df}"
    )
    return with_null_comparison(result, null_result.statistic, null_result.df)


def _compute_one_imputation(
    model: FittedModel,
    config: M2Config,
    latent_estimates: NDArray[np.float64],
    null_model: FittedModel | None,
    rng: Generator,
) -> FitResult:
    responses = impute_missing(model, latent_estimates, rng)
    assert isinstance(responses, np.ndarray)
    completed = model.with_responses(responses)
    completed_null = (
        null_model.with_responses(responses) if null_model is not None else None
    )
    result = _compute_complete(completed, config, completed_null, None)
    assert isinstance(result, FitResult)
    return result


def compute_m2(
    model: FittedModel,
    config: M2Config | None = None,
    *,
    latent_estimates: NDArray[np.float64] | None = None,
    null_model: FittedModel | None = None,
    parallel: Parallel | None = None,
    rng: Generator | int | None = None,
) -> M2Output:
    """
    Compute M2 and its fit indices for a fitted model.

    Args:
        model: Fitted single- or multiple-group model.
        config: Options. Uses defaults if None.
        latent_estimates: Latent trait estimates, shape
            (n_respondents, n_factors). Required when the data contain
            missing values.
        null_model: Null model to compare against. The independence model
            is fitted to the data when None.
        parallel: joblib.Parallel used for groups and imputations. Runs
            sequentially when None.
        rng: Random generator or seed for imputation.

    Returns:
        FitResult for complete data; PooledFitResult when imputing;
        ResidualMatrix (or one per group) in residual mode.

    Raises:
        UnsupportedModelError: For mixed-effects models or unsupported
            item types.
        MissingInputError: If data are missing and no imputation plan
            (imputations > 0 and latent_estimates) is given.
        InsufficientDegreesOfFreedomError: If df <= 0.
        IllConditionedError: If the projected weight matrix is singular.
        NullModelConvergenceError: If the null model fails and
            best_effort_null is off.
    """
    if config is None:
        config = M2Config()
    if model.mixed_effects:
        raise UnsupportedModelError(
            "M2 is not supported for mixed-effects models"
        )
    unsupported = {
        item.item_type.value
        for group in model.groups
        for item in group.items
        if item.item_type not in M2_ITEM_TYPES
    }
    if unsupported:
        raise UnsupportedModelError(
            f"M2 does not support item types {sorted(unsupported)}"
        )

    logger.info(
        f"Computing M2 for {model.n_items} items, "
        f"{model.data.n_respondents} respondents, "
        f"{len(model.groups)} group(s), "
        f"{count_moments(model.n_items)} moments per group"
    )

    if not model.data.has_missing:
        return _compute_complete(model, config, null_model, parallel)

    if config.imputations == 0 or latent_estimates is None:
        raise MissingInputError(
            "data contain missing values; set imputations > 0 and pass "
            "latent_estimates"
        )

    logger.info(f"Imputing missing data {config.imputations} times")
    generators = spawn_generators(rng, config.imputations)
    if parallel is None:
        results = [
            _compute_one_imputation(
                model, config, latent_estimates, null_model, generator
            )
            for generator in generators
        ]
    else:
        results = list(
            parallel(
                delayed(_compute_one_imputation)(
                    model, config, latent_estimates, null_model, generator
                )
                for generator in generators
            )
        )
    return pool_fit_results(results)
