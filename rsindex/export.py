"""Tabular views of simulation results.

Converts replicate summaries and aggregated trajectories into pandas
DataFrames for plotting or serialization by the caller. No file I/O here.
"""

from __future__ import annotations

from typing import Sequence

import pandas as pd

from rsindex.types import AggregatedTrajectory, ReplicateResult


SUMMARY_COLUMNS = [
    'replicate', 'generation', 'n', 'priority',
    'mean_1', 'mean_2', 'var_1', 'var_2', 'cov_12',
]

TRAJECTORY_COLUMNS = [
    'generation', 'mean_1', 'sd_1', 'mean_2', 'sd_2',
    'var_1', 'var_2', 'cov_12', 'n_replicates',
]


def summaries_to_frame(results: Sequence[ReplicateResult]) -> pd.DataFrame:
    """Long-format table: one row per (replicate, generation).

    ``priority`` is 1 or 2 (the trait the index prioritized when the
    generation was produced) and missing for generation 0.
    """
    rows = []
    for res in results:
        for s in res.summaries:
            rows.append({
                'replicate': res.replicate,
                'generation': s.generation,
                'n': s.n_individuals,
                'priority': None if s.priority is None else s.priority.column + 1,
                'mean_1': s.mean_1,
                'mean_2': s.mean_2,
                'var_1': float(s.covariance[0, 0]),
                'var_2': float(s.covariance[1, 1]),
                'cov_12': float(s.covariance[0, 1]),
            })
    frame = pd.DataFrame(rows, columns=SUMMARY_COLUMNS)
    frame['priority'] = frame['priority'].astype('Int64')
    return frame


def trajectory_to_frame(trajectory: AggregatedTrajectory) -> pd.DataFrame:
    """Wide table: one row per generation, cross-replicate mean and sd."""
    return pd.DataFrame({
        'generation': trajectory.generations,
        'mean_1': trajectory.mean[:, 0],
        'sd_1': trajectory.sd[:, 0],
        'mean_2': trajectory.mean[:, 1],
        'sd_2': trajectory.sd[:, 1],
        'var_1': trajectory.mean_covariance[:, 0, 0],
        'var_2': trajectory.mean_covariance[:, 1, 1],
        'cov_12': trajectory.mean_covariance[:, 0, 1],
        'n_replicates': trajectory.n_replicates,
    }, columns=TRAJECTORY_COLUMNS)


def priority_frequencies(results: Sequence[ReplicateResult]) -> pd.DataFrame:
    """Share of replicates prioritizing trait 1 at each generation ≥ 1."""
    frame = summaries_to_frame(results)
    frame = frame[frame['generation'] > 0]
    return (
        frame.assign(trait_1=(frame['priority'] == 1).astype(float))
        .groupby('generation', as_index=False)['trait_1']
        .mean()
        .rename(columns={'trait_1': 'share_trait_1'})
    )
