"""
Loyalty Token Constants

Fixed values shared by the registry, lifecycle ledger, and vesting engine.
"""

from typing import Final

# =============================================================================
# ADDRESSES
# =============================================================================

ZERO_ADDRESS: Final[str] = "0x" + "0" * 40

# =============================================================================
# TOKEN IDS
# =============================================================================

# Token 0 is reserved: pre-marked burnt and never issued
RESERVED_TOKEN_ID: Final[int] = 0
FIRST_TOKEN_ID: Final[int] = 1

# =============================================================================
# ARITHMETIC
# =============================================================================

UINT256_MAX: Final[int] = 2**256 - 1

# =============================================================================
# NOTIFICATION NAMES
# =============================================================================

EVENT_MINTED: Final[str] = "Minted"
EVENT_BURNED: Final[str] = "Burned"
EVENT_VESTED: Final[str] = "Vested"
EVENT_SCHEDULE_SET: Final[str] = "ScheduleSet"
EVENT_TRANSFERABILITY_CHANGED: Final[str] = "TransferabilityChanged"
