"""
Core lifecycle, vesting, and contract wiring.
"""

from .config import LoyaltyConfig
from .events import EventBus, LoyaltyEvent
from .exceptions import (
    AlreadyBurnt,
    ConfigurationError,
    InvalidParameter,
    InvalidTarget,
    LoyaltyTokenError,
    NotFound,
    NotYetVested,
    ScheduleNotSet,
    TransferFailed,
    TransfersDisabled,
    Unauthorized,
)
from .interfaces import OwnershipOracle, RewardLedger
from .lifecycle import LifecycleLedger
from .loyalty_contract import LoyaltyTokenContract
from .metrics import LoyaltyMetrics
from .vesting import VestingEngine

__all__ = [
    "LoyaltyConfig",
    "EventBus",
    "LoyaltyEvent",
    "LifecycleLedger",
    "VestingEngine",
    "LoyaltyTokenContract",
    "LoyaltyMetrics",
    "OwnershipOracle",
    "RewardLedger",
    # Exceptions
    "LoyaltyTokenError",
    "Unauthorized",
    "InvalidTarget",
    "InvalidParameter",
    "AlreadyBurnt",
    "NotFound",
    "TransfersDisabled",
    "ScheduleNotSet",
    "NotYetVested",
    "TransferFailed",
    "ConfigurationError",
]
