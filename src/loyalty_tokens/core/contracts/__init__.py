"""
Reference collaborator contracts.

- NFTRegistry: ERC721-style ownership registry (OwnershipOracle)
- RewardToken: ERC20-style reward ledger (RewardLedger)
"""

from .erc20 import InsufficientBalance, RewardMovement, RewardToken
from .erc721 import NFTEvent, NFTRegistry

__all__ = [
    "NFTRegistry",
    "NFTEvent",
    "RewardToken",
    "RewardMovement",
    "InsufficientBalance",
]
