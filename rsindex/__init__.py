"""rsindex: recurrent selection on two correlated traits.

A replicate-level simulation engine coupling:
  - A two-trait additive genetic model with correlated environmental noise
  - An adaptive residual selection index (priority trait regressed on the other)
  - Truncation selection on the index
  - Random pairing with midparent + Mendelian segregation offspring values
  - Independent, seeded replicates aggregated into mean/sd trajectories
"""

__version__ = "0.1.0"
