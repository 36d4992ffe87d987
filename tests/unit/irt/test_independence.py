"""
Tests for the closed-form independence model.
"""

import numpy as np
import pytest

from irtfit.core.constants import MISSING_VALUE
from irtfit.core.data_models import ResponseMatrix
from irtfit.fit.exceptions import NullModelConvergenceError
from irtfit.irt.independence import fit_independence_model, independence_item
from irtfit.irt.items import DichotomousItem, GradedItem, NominalItem
from irtfit.irt.model import FittedModel, GroupModel, LatentDistribution


class TestIndependenceItem:
    def test_trace_reproduces_proportions(self) -> None:
        """Zero slopes make the trace equal to the category proportions."""
        counts = np.array([10, 30, 60])
        item = independence_item(counts)

        probs = item.probability_trace(np.array([[-2.0], [0.0], [3.0]]))
        np.testing.assert_allclose(probs, np.tile(counts / 100, (3, 1)))

    def test_only_intercepts_free(self) -> None:
        item = independence_item(np.array([5, 5, 5, 5]))
        assert isinstance(item, NominalItem)
        assert item.n_free_parameters == 3
        assert item.slopes == (0.0,)

    def test_empty_category_fails(self) -> None:
        with pytest.raises(NullModelConvergenceError, match="categories"):
            independence_item(np.array([4, 0, 6]))


class TestFitIndependenceModel:
    def test_single_group(self) -> None:
        items = (
            DichotomousItem(slopes=(1.0,), intercept=0.0),
            GradedItem(slopes=(1.0,), intercepts=(0.5, -0.5)),
        )
        responses = np.array(
            [[0, 1], [1, 2], [1, 0], [MISSING_VALUE, 2], [1, 1]]
        )
        model = FittedModel.single_group(
            items, ResponseMatrix(responses=responses)
        )

        null = fit_independence_model(model)

        assert null.nest == 1 + 2
        assert null.n_factors == 1
        probs = null.groups[0].items[0].probability_trace(np.zeros((1, 1)))
        # Missing responses are skipped: 1 zero and 3 ones
        np.testing.assert_allclose(probs[0], [0.25, 0.75])
        probs = null.groups[0].items[1].probability_trace(np.zeros((1, 1)))
        np.testing.assert_allclose(probs[0], [0.2, 0.4, 0.4])

    def test_groups_get_their_own_intercepts(self) -> None:
        items = (DichotomousItem(slopes=(1.0,), intercept=0.0),)
        groups = tuple(
            GroupModel(
                name=name,
                items=items,
                distribution=LatentDistribution.standard(1),
            )
            for name in ("a", "b")
        )
        responses = np.array([[0], [1], [1], [0], [0], [1]])
        model = FittedModel(
            groups=groups,
            data=ResponseMatrix(responses=responses),
            group_labels=np.array(["a", "a", "a", "b", "b", "b"]),
        )

        null = fit_independence_model(model)

        theta = np.zeros((1, 1))
        np.testing.assert_allclose(
            null.groups[0].items[0].probability_trace(theta)[0], [1 / 3, 2 / 3]
        )
        np.testing.assert_allclose(
            null.groups[1].items[0].probability_trace(theta)[0], [2 / 3, 1 / 3]
        )
        assert null.nest == 2

    def test_unused_category_in_group_fails(self) -> None:
        items = (GradedItem(slopes=(1.0,), intercepts=(0.5, -0.5)),)
        model = FittedModel.single_group(
            items, ResponseMatrix(responses=np.array([[0], [2], [2]]))
        )
        with pytest.raises(NullModelConvergenceError, match="item 0"):
            fit_independence_model(model)
