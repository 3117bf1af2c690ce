"""
Loyalty Tokens - non-fungible loyalty credentials with vesting rewards.

Main Components:
- LifecycleLedger: Active/Burnt state machine and transferability flag
- VestingEngine: time-locked release of the reward pool
- LoyaltyTokenContract: single-writer, transactional facade over both
- NFTRegistry / RewardToken: bundled ownership registry and reward ledger
"""

__version__ = "0.1.0"

from loyalty_tokens.core import (
    LifecycleLedger,
    LoyaltyConfig,
    LoyaltyTokenContract,
    VestingEngine,
)

__all__ = [
    "LifecycleLedger",
    "LoyaltyConfig",
    "LoyaltyTokenContract",
    "VestingEngine",
]
