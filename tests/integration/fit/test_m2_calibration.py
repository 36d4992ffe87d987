"""
Calibration check for M2 under the true model.

Replicates data from known 2PL parameters and verifies the M2 p-values are
approximately uniform, i.e. the statistic follows its chi-square reference
distribution when the model is correct.
"""

import numpy as np
import pytest
from scipy.stats import kstest

from irtfit.core.data_models import ResponseMatrix
from irtfit.core.utils import get_rng
from irtfit.fit import FitResult, M2Config, compute_m2
from irtfit.irt.items import DichotomousItem
from irtfit.irt.model import FittedModel
from irtfit.irt.sampling import sample_responses

# Test configuration
N_REPLICATIONS = 200
N_RESPONDENTS = 500
SEED = 42

TRUE_ITEMS = (
    DichotomousItem(slopes=(1.0,), intercept=-1.0),
    DichotomousItem(slopes=(1.4,), intercept=-0.4),
    DichotomousItem(slopes=(0.8,), intercept=0.0),
    DichotomousItem(slopes=(1.7,), intercept=0.5),
    DichotomousItem(slopes=(1.2,), intercept=1.1),
)


@pytest.mark.slow
def test_p_values_are_uniform() -> None:
    rng = get_rng(SEED)
    config = M2Config(calc_null=False)

    p_values = np.empty(N_REPLICATIONS)
    statistics = np.empty(N_REPLICATIONS)
    for r in range(N_REPLICATIONS):
        theta = rng.standard_normal(N_RESPONDENTS)
        responses = sample_responses(TRUE_ITEMS, theta, rng)
        model = FittedModel.single_group(
            TRUE_ITEMS, ResponseMatrix(responses=responses)
        )
        result = compute_m2(model, config)
        assert isinstance(result, FitResult)
        p_values[r] = result.p_value
        statistics[r] = result.statistic

    _, ks_p = kstest(p_values, "uniform")
    assert ks_p > 0.001, f"p-values not uniform (KS p = {ks_p:.4g})"

    # Mean of chi-square(5) is 5
    assert 4.0 < statistics.mean() < 6.0
