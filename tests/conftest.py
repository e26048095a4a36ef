"""Shared fixtures for the lock ledger tests."""

import os
import sys

import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from tierlock.config.schema import LockPolicy, PenaltyParams, Tier
from tierlock.engine.ledger import TokenLedger
from tierlock.engine.locker import LockEngine

DAY = 86_400
START = 1_000_000

OPERATOR = "operator"
TREASURY = "treasury"
STAKE = "LOCK"
USDC = "USDC"
WETH = "WETH"
ACCOUNTS = ("alice", "bob", "carol")
INITIAL_BALANCE = 1_000_000

# Tier table used across engine tests:
#   0: 10d x1, 1: 30d x1, 2: 60d x2, 3: 90d x3, 4: 360d x5
TIERS = [
    (10 * DAY, 1),
    (30 * DAY, 1),
    (60 * DAY, 2),
    (90 * DAY, 3),
    (360 * DAY, 5),
]


class FakeClock:
    """Integer clock the tests advance by hand."""

    def __init__(self, now: int = START):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> int:
        self.now += seconds
        return self.now


def make_policy(**overrides) -> LockPolicy:
    data = dict(
        tiers=[Tier(period=p, multiplier=m) for p, m in TIERS],
        penalty=PenaltyParams(base_penalty=15_000, time_penalty_fraction=35_000),
        default_relock_period=30 * DAY,
    )
    data.update(overrides)
    return LockPolicy(**data)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ledger():
    ledger = TokenLedger()
    for account in ACCOUNTS:
        ledger.mint(STAKE, account, INITIAL_BALANCE)
    return ledger


@pytest.fixture
def engine(clock, ledger):
    """Engine with stake token, treasury and two reward tokens configured."""
    engine = LockEngine(
        policy=make_policy(),
        ledger=ledger,
        operator=OPERATOR,
        clock=clock,
    )
    engine.set_stake_token(OPERATOR, STAKE)
    engine.set_treasury(OPERATOR, TREASURY)
    engine.register_reward_token(OPERATOR, USDC)
    engine.register_reward_token(OPERATOR, WETH)
    return engine


def fund_rewards(engine: LockEngine, token: str, amount: int) -> int:
    """Send reward funds to the engine and notify the inflow."""
    engine.ledger.mint(token, engine.address, amount)
    return engine.notify_inflow(token)
