"""Tests for herbicide_pva.sampler: joint vital-rate draws."""

import numpy as np
import pytest
from scipy.special import expit

from herbicide_pva.rng import make_rng
from herbicide_pva.sampler import draw_normal, inverse_logit, sample_parameters
from herbicide_pva.types import (
    FECUNDITY_FLOOR,
    SURVIVAL_STAGES,
    InvalidParameterError,
    ScenarioInputs,
    VitalRateEstimate,
)


def _inputs(**overrides):
    kwargs = dict(
        survival1=(1.0, 0.1),
        survival2=(0.5, 0.1),
        survival3=(-0.5, 0.1),
        survival4=(2.0, 0.1),
        fecundity=(50.0, 5.0),
        indirect=(1.3, 0.1),
    )
    kwargs.update(overrides)
    return ScenarioInputs(**kwargs)


class TestInverseLogit:
    def test_matches_logistic(self):
        x = np.array([-2.0, 0.0, 1.5])
        np.testing.assert_allclose(inverse_logit(x), 1.0 / (1.0 + np.exp(-x)))

    def test_saturated_values_stay_open(self):
        """expit(±800) is exactly 0/1 in float64; the clip keeps (0, 1)."""
        p = inverse_logit(np.array([-800.0, -40.0, 40.0, 800.0]))
        assert np.all(p > 0.0)
        assert np.all(p < 1.0)


class TestDrawNormal:
    def test_zero_se_is_exact(self):
        rng = make_rng(1)
        vals = draw_normal(rng, VitalRateEstimate(1.0, 0.0), 1000)
        assert np.all(vals == 1.0)

    def test_moments(self):
        rng = make_rng(2)
        vals = draw_normal(rng, VitalRateEstimate(50.0, 5.0), 50000)
        assert abs(vals.mean() - 50.0) < 0.1
        assert abs(vals.std() - 5.0) < 0.1


class TestSampleParameters:
    def test_shapes(self):
        draw = sample_parameters(make_rng(3), _inputs(), 250)
        assert draw.n_replicates == 250
        for name in SURVIVAL_STAGES + ('fecundity', 'indirect'):
            assert getattr(draw, name).shape == (250,)

    def test_survival_bounds(self):
        """Every survival draw is strictly inside (0, 1), even at extreme logits."""
        inputs = _inputs(
            survival1=(60.0, 20.0),
            survival2=(-60.0, 20.0),
            survival3=(0.0, 500.0),
            survival4=(2.0, 0.1),
        )
        draw = sample_parameters(make_rng(4), inputs, 10000)
        for name in SURVIVAL_STAGES:
            vals = getattr(draw, name)
            assert np.all(vals > 0.0), name
            assert np.all(vals < 1.0), name

    def test_fecundity_floor(self):
        inputs = _inputs(fecundity=(0.5, 10.0))
        draw = sample_parameters(make_rng(5), inputs, 10000)
        assert np.all(draw.fecundity >= FECUNDITY_FLOOR)
        # Roughly half the raw draws were negative and got floored
        assert np.count_nonzero(draw.fecundity == FECUNDITY_FLOOR) > 1000

    def test_indirect_not_floored(self):
        inputs = _inputs(indirect=(0.1, 1.0))
        draw = sample_parameters(make_rng(6), inputs, 5000)
        assert np.any(draw.indirect < 0.0)

    @pytest.mark.parametrize('replicates', [1, 7, 10000])
    def test_pinned_indirect_is_exactly_one(self, replicates):
        draw = sample_parameters(make_rng(7), _inputs(indirect=(1.0, 0.0)), replicates)
        assert np.all(draw.indirect == 1.0)

    def test_zero_se_survival_is_point_estimate(self):
        inputs = _inputs(survival1=(1.0, 0.0))
        draw = sample_parameters(make_rng(8), inputs, 100)
        assert np.all(draw.survival1 == expit(1.0))

    def test_stream_consumption_independent_of_se(self):
        """Zero and non-zero SEs consume the same number of variates."""
        rng_a = make_rng(9)
        rng_b = make_rng(9)
        sample_parameters(rng_a, _inputs(), 100)
        sample_parameters(rng_b, _inputs(indirect=(1.0, 0.0), survival2=(0.5, 0.0)), 100)
        assert rng_a.bit_generator.state == rng_b.bit_generator.state

    def test_shared_draws_pair_survivals_across_modes(self):
        """Same stream → identical survivals whether or not indirect varies."""
        inputs = _inputs()
        a = sample_parameters(make_rng(10), inputs, 500)
        b = sample_parameters(make_rng(10), inputs.direct_only(), 500)
        np.testing.assert_array_equal(a.survival1, b.survival1)
        np.testing.assert_array_equal(a.fecundity, b.fecundity)
        assert np.all(b.indirect == 1.0)

    def test_reproducible(self):
        a = sample_parameters(make_rng(11), _inputs(), 1000)
        b = sample_parameters(make_rng(11), _inputs(), 1000)
        np.testing.assert_array_equal(a.as_array(), b.as_array())

    def test_invalid_replicates(self):
        with pytest.raises(InvalidParameterError):
            sample_parameters(make_rng(12), _inputs(), 0)
