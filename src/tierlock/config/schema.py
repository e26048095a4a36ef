"""Pydantic schema for configuration validation."""

import hashlib
import json
from typing import Any, Dict, List

from pydantic import BaseModel, Field, field_validator, model_validator

# Penalty fractions are expressed in parts of WHOLE (15_000 == 15%)
WHOLE = 100_000

DAY = 86_400


class Tier(BaseModel):
    """A (period, multiplier) pair selectable at stake time."""
    period: int = Field(gt=0, description="Lock duration in seconds")
    multiplier: int = Field(gt=0, description="Reward weight applied to the staked amount")


class PenaltyParams(BaseModel):
    """Early-exit penalty parameters."""
    base_penalty: int = Field(
        ge=0, le=WHOLE, description="Penalty floor, in parts of WHOLE"
    )
    time_penalty_fraction: int = Field(
        ge=0, le=WHOLE, description="Share that decays as the cycle completes, in parts of WHOLE"
    )

    @model_validator(mode='after')
    def validate_total(self):
        """Ensure the penalty can never exceed the staked amount."""
        total = self.base_penalty + self.time_penalty_fraction
        if total > WHOLE:
            raise ValueError(
                f"base_penalty + time_penalty_fraction must be <= {WHOLE}, got {total} "
                f"(base: {self.base_penalty}, time: {self.time_penalty_fraction})"
            )
        return self


class LockPolicy(BaseModel):
    """Tier table and exit rules applied to new lifecycle operations.

    Operator changes produce a new policy with ``version`` bumped; records
    keep the period and multiplier captured when they were created.
    """
    tiers: List[Tier] = Field(min_length=1, description="Selectable lock tiers")
    penalty: PenaltyParams
    default_relock_period: int = Field(
        gt=0, description="Cycle length applied once a lock outlives its own period"
    )
    early_exit_enabled: bool = Field(default=True, description="Allow exiting early with a penalty")
    version: int = Field(default=0, ge=0, description="Incremented on every operator change")

    @classmethod
    def from_arrays(
        cls,
        periods: List[int],
        multipliers: List[int],
        **kwargs: Any,
    ) -> 'LockPolicy':
        """Build a policy from parallel period and multiplier arrays."""
        if len(periods) != len(multipliers):
            raise ValueError(
                f"periods and multipliers must have the same length, "
                f"got {len(periods)} and {len(multipliers)}"
            )
        tiers = [Tier(period=p, multiplier=m) for p, m in zip(periods, multipliers)]
        return cls(tiers=tiers, **kwargs)

    @property
    def periods(self) -> List[int]:
        return [t.period for t in self.tiers]

    @property
    def multipliers(self) -> List[int]:
        return [t.multiplier for t in self.tiers]

    def evolve(self, **changes: Any) -> 'LockPolicy':
        """Return a re-validated copy with ``changes`` applied and the version bumped."""
        data = self.model_dump()
        data.update(changes)
        data['version'] = self.version + 1
        return LockPolicy(**data)


class Simulation(BaseModel):
    """Scenario runner parameters."""
    steps: int = Field(gt=0, description="Number of simulated steps")
    step_seconds: int = Field(gt=0, description="Clock advance per step")
    accounts: int = Field(gt=0, description="Number of simulated accounts")
    random_seed: int = Field(description="Random seed for reproducibility")
    start_time: int = Field(default=1_700_000_000, ge=0, description="Initial clock value")
    initial_balance: int = Field(gt=0, description="Stake tokens minted to each account")
    max_stake_fraction: float = Field(
        gt=0, le=1, default=0.25,
        description="Largest share of an account's free balance staked in one action"
    )
    stake_token: str = Field(default="LOCK", min_length=1)
    reward_tokens: List[str] = Field(default_factory=list)
    reward_inflow_per_step: int = Field(ge=0, default=0, description="Inflow of each reward token per step")
    action_weights: Dict[str, float] = Field(
        default_factory=lambda: {
            "stake": 4.0,
            "early_exit": 0.5,
            "exit_late": 1.0,
            "restake": 1.0,
            "withdraw": 1.0,
            "claim": 1.5,
            "idle": 3.0,
        },
        description="Relative likelihood of each per-account action"
    )

    @field_validator('action_weights')
    @classmethod
    def validate_action_weights(cls, v):
        """Ensure weights name known actions and leave something to choose."""
        known = {"stake", "early_exit", "exit_late", "restake", "withdraw", "claim", "idle"}
        unknown = set(v) - known
        if unknown:
            raise ValueError(f"unknown actions in action_weights: {sorted(unknown)}")
        if any(w < 0 for w in v.values()):
            raise ValueError("action weights must be non-negative")
        if sum(v.values()) <= 0:
            raise ValueError("action weights must not all be zero")
        return v

    @model_validator(mode='after')
    def validate_tokens(self):
        """The stake token cannot double as a reward token."""
        if self.stake_token in self.reward_tokens:
            raise ValueError(f"stake token {self.stake_token} cannot also be a reward token")
        if len(set(self.reward_tokens)) != len(self.reward_tokens):
            raise ValueError("reward_tokens contains duplicates")
        return self


class Config(BaseModel):
    """Complete configuration for the lock ledger."""
    lock: LockPolicy
    simulation: Simulation

    def compute_hash(self) -> str:
        """Compute config hash for reproducibility."""
        config_dict = self.model_dump()
        config_str = json.dumps(config_dict, sort_keys=True)
        return hashlib.sha256(config_str.encode()).hexdigest()[:16]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Config':
        """Create config from dictionary."""
        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return self.model_dump()
