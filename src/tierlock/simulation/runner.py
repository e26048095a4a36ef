"""Scenario runner - drive the lock engine with seeded account activity.

Key Features:
- One engine per run on a simulated clock and a fresh custody ledger
- Each step, every account takes one action drawn from ``action_weights``
- Reward tokens are funded and notified every step
- Invariants are checked after every step; policy rejections are counted
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import numpy as np

from ..config.schema import Config
from ..engine.errors import LockLedgerError
from ..engine.ledger import TokenLedger
from ..engine.locker import LockEngine
from ..engine.registry import LockRecord
from ..validation.sanity_checks import validate_engine

logger = logging.getLogger(__name__)

ACTIONS = ("stake", "early_exit", "exit_late", "restake", "withdraw", "claim", "idle")

OPERATOR = "operator"
TREASURY = "treasury"


class SimulationClock:
    """Manually advanced integer clock."""

    def __init__(self, start: int = 0):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> int:
        self.now += seconds
        return self.now


@dataclass
class StepSnapshot:
    """Engine state after a step."""
    step: int
    t: int  # Clock value
    total_locked: int
    total_locked_weighted: int
    active_locks: int
    maturing_locks: int
    treasury_balance: int  # Penalties collected so far
    rewards_paid: Dict[str, int] = field(default_factory=dict)


@dataclass
class SimulationResult:
    """Complete simulation result."""
    config: Config
    snapshots: List[StepSnapshot]
    final_metrics: Dict[str, Any]
    action_counts: Dict[str, int] = field(default_factory=dict)
    rejections: Dict[str, int] = field(default_factory=dict)
    invariant_errors: List[str] = field(default_factory=list)
    engine: Optional[LockEngine] = field(default=None, repr=False)


class ScenarioRunner:
    """Run a lock scenario from configuration."""

    def __init__(self, config: Config):
        """
        Initialize scenario runner.

        Args:
            config: Lock policy and scenario configuration
        """
        self.config = config
        sim = config.simulation
        self.accounts = [f"account-{i:03d}" for i in range(sim.accounts)]
        weights = np.array([sim.action_weights.get(a, 0.0) for a in ACTIONS], dtype=float)
        self._action_probs = weights / weights.sum()

    def build_engine(self, clock: SimulationClock) -> LockEngine:
        """Create a funded engine with the stake and reward tokens registered."""
        sim = self.config.simulation
        ledger = TokenLedger()
        engine = LockEngine(
            policy=self.config.lock,
            ledger=ledger,
            operator=OPERATOR,
            clock=clock,
        )
        engine.set_stake_token(OPERATOR, sim.stake_token)
        engine.set_treasury(OPERATOR, TREASURY)
        for token in sim.reward_tokens:
            engine.register_reward_token(OPERATOR, token)

        for account in self.accounts:
            ledger.mint(sim.stake_token, account, sim.initial_balance)
        return engine

    def run(self, random_seed: int = None) -> SimulationResult:
        """
        Run the scenario.

        Args:
            random_seed: Overrides the configured seed

        Returns:
            SimulationResult with per-step snapshots and final metrics
        """
        sim = self.config.simulation
        seed = sim.random_seed if random_seed is None else random_seed
        rng = np.random.default_rng(seed)

        clock = SimulationClock(sim.start_time)
        engine = self.build_engine(clock)

        snapshots: List[StepSnapshot] = []
        action_counts = {a: 0 for a in ACTIONS}
        rejections: Dict[str, int] = {}
        invariant_errors: List[str] = []

        for step in range(sim.steps):
            clock.advance(sim.step_seconds)

            for account in self.accounts:
                action = str(rng.choice(ACTIONS, p=self._action_probs))
                action_counts[action] += 1
                try:
                    self._apply(engine, rng, account, action)
                except LockLedgerError as exc:
                    name = type(exc).__name__
                    rejections[name] = rejections.get(name, 0) + 1
                    logger.debug("Action rejected: %s %s: %s", account, action, exc)

            if sim.reward_inflow_per_step > 0:
                for token in sim.reward_tokens:
                    engine.ledger.mint(token, engine.address, sim.reward_inflow_per_step)
                engine.notify_all()

            for warning in validate_engine(engine, include_warnings=False):
                invariant_errors.append(f"step {step}: {warning.message} ({warning.details})")

            snapshots.append(self._snapshot(engine, step, clock.now))

        final_metrics = self._final_metrics(engine, snapshots)
        logger.info(
            "Scenario finished",
            extra={
                "event": "simulation.finished",
                "steps": sim.steps,
                "seed": seed,
                "invariant_errors": len(invariant_errors),
            },
        )
        return SimulationResult(
            config=self.config,
            snapshots=snapshots,
            final_metrics=final_metrics,
            action_counts=action_counts,
            rejections=rejections,
            invariant_errors=invariant_errors,
            engine=engine,
        )

    def _apply(self, engine: LockEngine, rng: np.random.Generator, account: str, action: str) -> None:
        sim = self.config.simulation
        records = list(engine.registry.iter_owner(account))

        if action == "stake":
            free = engine.ledger.balance_of(account, sim.stake_token)
            ceiling = int(free * sim.max_stake_fraction)
            amount = int(rng.integers(1, ceiling + 1)) if ceiling >= 1 else free
            tier_index = int(rng.integers(len(engine.policy.tiers)))
            engine.stake(account, amount, tier_index)
        elif action == "early_exit":
            record = _pick(rng, [r for r in records if r.is_active])
            if record is not None:
                engine.early_exit_by_id(account, record.id)
        elif action == "exit_late":
            record = _pick(rng, [r for r in records if r.is_active])
            if record is not None:
                engine.exit_late_by_id(account, record.id)
        elif action == "restake":
            record = _pick(rng, [r for r in records if r.exited_late])
            if record is not None:
                tier_index = int(rng.integers(len(engine.policy.tiers)))
                engine.restake_after_late_exit(account, record.id, tier_index)
        elif action == "withdraw":
            engine.withdraw_all_unlocked(account)
        elif action == "claim":
            engine.claim_all(account)

    def _snapshot(self, engine: LockEngine, step: int, now: int) -> StepSnapshot:
        with engine.consistent_view():
            return self._read_snapshot(engine, step, now)

    def _read_snapshot(self, engine: LockEngine, step: int, now: int) -> StepSnapshot:
        active = 0
        maturing = 0
        for record in engine.registry.iter_all():
            if record.is_active:
                active += 1
            else:
                maturing += 1

        rewards_paid = {
            token: sum(engine.paid_to_date(a, token) for a in self.accounts)
            for token in engine.rewards.tokens
        }
        return StepSnapshot(
            step=step,
            t=now,
            total_locked=engine.total_locked,
            total_locked_weighted=engine.total_locked_weighted,
            active_locks=active,
            maturing_locks=maturing,
            treasury_balance=engine.ledger.balance_of(TREASURY, self.config.simulation.stake_token),
            rewards_paid=rewards_paid,
        )

    def _final_metrics(self, engine: LockEngine, snapshots: List[StepSnapshot]) -> Dict[str, Any]:
        if not snapshots:
            return {}
        final = snapshots[-1]
        locked_series = np.array([s.total_locked for s in snapshots], dtype=float)
        return {
            'config_hash': self.config.compute_hash(),
            'final_locked': final.total_locked,
            'final_locked_weighted': final.total_locked_weighted,
            'peak_locked': int(locked_series.max()),
            'mean_locked': float(locked_series.mean()),
            'active_locks': final.active_locks,
            'maturing_locks': final.maturing_locks,
            'penalties_collected': final.treasury_balance,
            'rewards_paid': dict(final.rewards_paid),
            'rewards_stranded': {
                token: channel.absorbed for token, channel in engine.rewards.channels.items()
            },
        }


def _pick(rng: np.random.Generator, records: List[LockRecord]) -> Optional[LockRecord]:
    if not records:
        return None
    return records[int(rng.integers(len(records)))]
