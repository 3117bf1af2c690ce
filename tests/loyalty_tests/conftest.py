import pytest

from loyalty_tokens.core.config import LoyaltyConfig
from loyalty_tokens.core.loyalty_contract import LoyaltyTokenContract

ADMIN = "0xadmin000000000000000000000000000000000001"
CUSTODY = "0xc0ffee0000000000000000000000000000000002"
ALICE = "0xa11ce00000000000000000000000000000000003"
BOB = "0xb0b0000000000000000000000000000000000004"
MALLORY = "0x3a11000000000000000000000000000000000005"

START_TIME = 1_700_000_000


class ManualClock:
    def __init__(self, start_time: int):
        self.current_time = start_time

    def now(self) -> int:
        return self.current_time

    def advance(self, seconds: int):
        self.current_time += seconds


@pytest.fixture
def admin():
    return ADMIN


@pytest.fixture
def custody():
    return CUSTODY


@pytest.fixture
def alice():
    return ALICE


@pytest.fixture
def bob():
    return BOB


@pytest.fixture
def mallory():
    return MALLORY


@pytest.fixture
def clock():
    return ManualClock(START_TIME)


@pytest.fixture
def config():
    return LoyaltyConfig(administrator=ADMIN, custody_address=CUSTODY)


@pytest.fixture
def contract(config, clock):
    return LoyaltyTokenContract(config, time_provider=clock.now)


@pytest.fixture(scope="session")
def clock_factory():
    """ManualClock class, for tests that need a fresh clock per generated example."""
    return ManualClock
