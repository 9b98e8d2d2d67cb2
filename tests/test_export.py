"""Tests for rsindex.export — DataFrame views of results."""

import numpy as np
import pandas as pd

from rsindex.config import PopulationSection, SimulationConfig, SimulationSection
from rsindex.export import (
    SUMMARY_COLUMNS,
    TRAJECTORY_COLUMNS,
    priority_frequencies,
    summaries_to_frame,
    trajectory_to_frame,
)
from rsindex.replicates import run_replicates


def _result():
    config = SimulationConfig(
        simulation=SimulationSection(n_generations=4, n_replicates=3),
        population=PopulationSection(founder_size=30, n_selected=10),
    )
    return run_replicates(config)


class TestSummariesToFrame:
    def test_one_row_per_replicate_generation(self):
        result = _result()
        frame = summaries_to_frame(result.replicates)
        assert list(frame.columns) == SUMMARY_COLUMNS
        assert len(frame) == 3 * 5
        assert sorted(frame['replicate'].unique()) == [0, 1, 2]

    def test_priority_missing_for_founders(self):
        frame = summaries_to_frame(_result().replicates)
        assert str(frame['priority'].dtype) == 'Int64'
        assert frame.loc[frame['generation'] == 0, 'priority'].isna().all()
        assert (frame.loc[frame['generation'] > 0, 'priority'] == 2).all()

    def test_values_match_summaries(self):
        result = _result()
        frame = summaries_to_frame(result.replicates)
        s = result.replicates[1].summaries[3]
        row = frame[(frame['replicate'] == 1) & (frame['generation'] == 3)].iloc[0]
        assert row['mean_1'] == s.mean_1
        assert row['cov_12'] == s.covariance[0, 1]

    def test_empty(self):
        frame = summaries_to_frame([])
        assert list(frame.columns) == SUMMARY_COLUMNS
        assert len(frame) == 0


class TestTrajectoryToFrame:
    def test_columns_and_values(self):
        result = _result()
        frame = trajectory_to_frame(result.trajectory)
        assert list(frame.columns) == TRAJECTORY_COLUMNS
        assert len(frame) == 5
        np.testing.assert_array_equal(frame['generation'], np.arange(5))
        np.testing.assert_allclose(frame['mean_2'], result.trajectory.mean[:, 1])
        assert (frame['n_replicates'] == 3).all()

    def test_round_trip_csv(self, tmp_path):
        frame = trajectory_to_frame(_result().trajectory)
        path = tmp_path / "trajectory.csv"
        frame.to_csv(path, index=False)
        pd.testing.assert_frame_equal(pd.read_csv(path), frame, check_dtype=False)


class TestPriorityFrequencies:
    def test_share_per_generation(self):
        freq = priority_frequencies(_result().replicates)
        assert list(freq.columns) == ['generation', 'share_trait_1']
        np.testing.assert_array_equal(freq['generation'], [1, 2, 3, 4])
        np.testing.assert_allclose(freq['share_trait_1'], 0.0)
