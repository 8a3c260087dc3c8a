# src/rewardstreams/ledger/constants.py
from __future__ import annotations

"""Reward stream constants.

- Accumulator is fixed-point, scaled by SCALER
- Epoch duration must be between 7 and 70 days
- Distributions may start up to 5 epochs ahead and last up to 25 epochs
- An account may accrue at most 5 rewards per rewarded asset
"""

# Fixed-point scale of the per-unit-of-weight accumulator.
SCALER: int = 2 * 10**19

DAY_SECONDS: int = 24 * 60 * 60

MIN_EPOCH_DURATION: int = 7 * DAY_SECONDS
MAX_EPOCH_DURATION: int = 10 * 7 * DAY_SECONDS

MAX_EPOCHS_AHEAD: int = 5
MAX_DISTRIBUTION_LENGTH: int = 25
MAX_REWARDS_ENABLED: int = 5

# Furthest epoch (relative to a distribution's last settlement) that can carry
# a scheduled amount. Settlement never needs to look past it.
SETTLEMENT_HORIZON_EPOCHS: int = MAX_EPOCHS_AHEAD + MAX_DISTRIBUTION_LENGTH

# Storage bounds kept from the fixed-width layout.
UINT128_MAX: int = 2**128 - 1
ACCUMULATOR_MAX: int = 2**160 - 1
