"""Tests for herbicide_pva.summary: scenario runner and comparative table."""

import numpy as np
import pandas as pd
import pytest

from herbicide_pva.config import (
    AnalysisSection,
    PVAConfig,
    ProjectionSection,
    build_scenarios,
)
from herbicide_pva.summary import (
    PCT_LOWER_1SE,
    PCT_UPPER_1SE,
    TABLE_COLUMNS,
    compare_treatments,
    relative_growth_rate,
    run_analysis,
    run_scenarios,
    summarize_means,
    summary_table,
)
from herbicide_pva.types import EffectMode


def _rates(s1=1.0, fec=50.0, indirect=(1.3, 0.1), se=0.1):
    return {
        'survival1': [s1, se],
        'survival2': [0.5, se],
        'survival3': [-0.5, se],
        'survival4': [2.0, se],
        'fecundity': [fec, 5.0 if se else 0.0],
        'indirect': list(indirect),
    }


def _config(replicates=2000, env_sd=0.15, policy='sequential', workers=1, **extra):
    treatments = {
        'untreated': _rates(indirect=(1.0, 0.0)),
        'triclopyr_nis': _rates(s1=0.7, fec=45.0, indirect=(1.3, 0.1)),
        'imazapic_mso': _rates(s1=0.8, fec=46.5, indirect=(1.2, 0.09)),
    }
    return PVAConfig(
        analysis=AnalysisSection(
            replicates=replicates, years=1, seed=42, baseline='untreated',
            env_sd=env_sd, stream_policy=policy, parallel_workers=workers,
        ),
        projection=ProjectionSection(**extra),
        treatments=treatments,
    )


# ── Statistics ────────────────────────────────────────────────────────

class TestRelativeGrowthRate:
    def test_baseline_against_itself(self):
        means = np.random.default_rng(0).lognormal(0.0, 0.2, 5000)
        rgr, lo, hi = relative_growth_rate(means, means)
        assert rgr == 1.0
        assert lo == 1.0
        assert hi == 1.0

    def test_ratio_of_means_not_mean_of_ratios(self):
        rgr, lo, hi = relative_growth_rate(np.array([2.0, 2.0]), np.array([1.0, 2.0]))
        assert rgr == pytest.approx(4.0 / 3.0)
        # Paired ratios are [2, 1]
        assert lo == pytest.approx(np.percentile([2.0, 1.0], 2.5))
        assert hi == pytest.approx(np.percentile([2.0, 1.0], 97.5))

    def test_mismatched_replicates(self):
        with pytest.raises(ValueError, match='paired'):
            relative_growth_rate(np.ones(10), np.ones(11))


class TestSummarizeMeans:
    def test_percentile_levels(self):
        assert PCT_LOWER_1SE == pytest.approx(15.8655, abs=1e-4)
        assert PCT_UPPER_1SE == pytest.approx(84.1345, abs=1e-4)

    def test_known_values(self):
        means = np.linspace(0.0, 2.0, 10001)
        s = summarize_means('x', EffectMode.DIRECT, means, np.ones_like(means))
        assert s.mean == pytest.approx(1.0)
        assert s.sd == pytest.approx(means.std(ddof=1))
        assert s.ci_2_5 == pytest.approx(0.05)
        assert s.ci_97_5 == pytest.approx(1.95)
        assert s.ci_16 == pytest.approx(2.0 * PCT_LOWER_1SE / 100.0)
        assert s.ci_84 == pytest.approx(2.0 * PCT_UPPER_1SE / 100.0)
        assert s.rgr == pytest.approx(1.0)
        assert s.effect_mode == 'direct'

    def test_zero_variance_is_a_point(self):
        means = np.full(100, 1.7)
        s = summarize_means('flat', EffectMode.DIRECT, means, means)
        assert s.sd == pytest.approx(0.0, abs=1e-12)
        for value in (s.ci_2_5, s.ci_16, s.ci_84, s.ci_97_5):
            assert value == pytest.approx(1.7)
        assert (s.rgr, s.rgr_ci_2_5, s.rgr_ci_97_5) == (1.0, 1.0, 1.0)

    def test_single_replicate_sd_is_zero(self):
        s = summarize_means('one', EffectMode.DIRECT, np.array([1.1]), np.array([1.0]))
        assert s.sd == 0.0
        assert s.rgr == pytest.approx(1.1)

    def test_row_columns(self):
        s = summarize_means('x', EffectMode.DIRECT_INDIRECT, np.ones(3), np.ones(3))
        assert list(s.as_row()) == TABLE_COLUMNS
        table = summary_table([s])
        assert list(table.columns) == TABLE_COLUMNS
        assert table.loc[0, 'effect_mode'] == 'direct+indirect'


# ── Runner ────────────────────────────────────────────────────────────

class TestRunScenarios:
    def test_one_result_per_scenario(self):
        scenarios = build_scenarios(_config())
        results = run_scenarios(scenarios, 500, 2)
        assert list(results) == [s.key for s in scenarios]
        assert len(results) == 5
        for result in results.values():
            assert result.growth_rates.shape == (500, 2)

    def test_parallel_matches_serial(self):
        scenarios = build_scenarios(_config())
        serial = run_scenarios(scenarios, 1000, 1, seed=7, stream_policy='independent')
        parallel = run_scenarios(
            scenarios, 1000, 1, seed=7, stream_policy='independent', parallel_workers=3,
        )
        for key in serial:
            np.testing.assert_array_equal(
                serial[key].growth_rates, parallel[key].growth_rates
            )

    def test_parallel_requires_split_streams(self):
        scenarios = build_scenarios(_config())
        with pytest.raises(ValueError, match='stream_policy'):
            run_scenarios(scenarios, 100, 1, parallel_workers=2)

    def test_common_streams_pair_effect_modes(self):
        scenarios = build_scenarios(_config())
        results = run_scenarios(scenarios, 500, 1, stream_policy='common')
        direct = results['triclopyr_nis/direct']
        both = results['triclopyr_nis/direct+indirect']
        np.testing.assert_array_equal(
            direct.parameters.survival2, both.parameters.survival2
        )
        assert np.all(direct.parameters.indirect == 1.0)

    def test_sequential_streams_differ_between_scenarios(self):
        scenarios = build_scenarios(_config())
        results = run_scenarios(scenarios, 500, 1, stream_policy='sequential')
        direct = results['triclopyr_nis/direct']
        both = results['triclopyr_nis/direct+indirect']
        assert not np.array_equal(
            direct.parameters.survival2, both.parameters.survival2
        )


class TestRunAnalysis:
    def test_table_layout(self):
        table = run_analysis(_config()).table
        assert list(table.columns) == TABLE_COLUMNS
        # Baseline reported under both labels + 2 modes × 2 treatments
        assert len(table) == 6
        assert list(table['name'])[:2] == ['untreated', 'untreated']
        assert list(table['effect_mode'])[:2] == ['direct', 'direct+indirect']

    def test_baseline_rgr_identity(self):
        table = run_analysis(_config()).table
        base = table[table['name'] == 'untreated']
        assert (base['rgr'] == 1.0).all()
        assert (base['rgr_ci_2.5'] == 1.0).all()
        assert (base['rgr_ci_97.5'] == 1.0).all()
        # Both baseline rows come from the same single run
        assert base.iloc[0]['mean'] == base.iloc[1]['mean']

    def test_interval_ordering(self):
        table = run_analysis(_config()).table
        assert (table['ci_2.5'] <= table['ci_16']).all()
        assert (table['ci_16'] <= table['ci_84']).all()
        assert (table['ci_84'] <= table['ci_97.5']).all()
        assert (table['rgr_ci_2.5'] <= table['rgr_ci_97.5']).all()

    def test_indirect_effect_raises_growth(self):
        table = run_analysis(_config()).table.set_index(['name', 'effect_mode'])
        assert (table.loc[('triclopyr_nis', 'direct+indirect'), 'mean']
                > table.loc[('triclopyr_nis', 'direct'), 'mean'])

    def test_reproducible(self):
        pd.testing.assert_frame_equal(
            run_analysis(_config()).table, run_analysis(_config()).table
        )

    def test_degenerate_scenario(self):
        config = _config(env_sd=0.0)
        config.treatments['untreated'] = _rates(indirect=(1.0, 0.0), se=0.0)
        table = run_analysis(config).table
        base = table[table['name'] == 'untreated'].iloc[0]
        assert base['sd'] == pytest.approx(0.0, abs=1e-12)
        assert base['ci_2.5'] == pytest.approx(base['ci_97.5'])
        assert base['ci_16'] == pytest.approx(base['mean'])

    def test_projection_disabled_by_default(self):
        assert run_analysis(_config()).projection is None

    def test_projection_enabled(self):
        result = run_analysis(_config(replicates=300, enabled=True, initial_abundance=50))
        assert result.projection is not None
        assert len(result.projection) == len(result.results)


class TestCompareTreatments:
    def test_nine_treatments_from_tuples(self):
        pairs = [(1.0, 0.1), (0.5, 0.1), (-0.5, 0.1), (2.0, 0.1), (50.0, 5.0)]
        treatments = {'untreated': pairs + [(1.0, 0.0)]}
        for i in range(8):
            treatments[f'trt{i}'] = pairs + [(1.0 + 0.05 * i, 0.05)]
        table = compare_treatments(
            treatments, env_sd=0.1, replicates=400, seed=3,
        )
        # 17 simulated scenarios; baseline row repeated under both labels
        assert len(table) == 18
        assert set(table['effect_mode']) == {'direct', 'direct+indirect'}

    def test_wrong_tuple_length(self):
        with pytest.raises(ValueError, match='pairs'):
            compare_treatments({'untreated': [(1.0, 0.1)] * 5}, env_sd=0.1)

    def test_unknown_baseline(self):
        with pytest.raises(ValueError, match='baseline'):
            compare_treatments(
                {'control': [(1.0, 0.1)] * 4 + [(50.0, 5.0), (1.0, 0.0)]},
                env_sd=0.1,
            )
