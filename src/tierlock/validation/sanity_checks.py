"""Sanity checks over engine state: conservation of locked supply and custody."""

from dataclasses import dataclass
from typing import List, Optional

from ..engine.locker import AccountBalance, LockEngine


@dataclass
class ValidationWarning:
    """A validation warning with severity and message."""
    severity: str  # "warning" or "error"
    category: str  # e.g., "conservation", "custody", "state"
    message: str
    details: Optional[str] = None


class InvariantChecker:
    """Run invariant checks against a lock engine."""

    def __init__(self, engine: LockEngine):
        """Initialize with the engine to inspect."""
        self.engine = engine

    def check_account_balances(self) -> List[ValidationWarning]:
        """
        Each account's aggregates must equal the sum over its active records.

        Returns:
            List of validation warnings
        """
        warnings = []
        accounts = set(self.engine.registry.owners()) | set(self.engine.balances)

        for account in sorted(accounts):
            expected = AccountBalance()
            for record in self.engine.registry.iter_owner(account):
                if record.is_active:
                    expected.locked += record.amount
                    expected.locked_weighted += record.weighted_amount

            actual = self.engine.account_balance(account)
            if actual != expected:
                warnings.append(ValidationWarning(
                    severity="error",
                    category="conservation",
                    message=f"Account aggregates drifted for {account}",
                    details=(
                        f"locked={actual.locked} vs {expected.locked}, "
                        f"weighted={actual.locked_weighted} vs {expected.locked_weighted}"
                    )
                ))

        return warnings

    def check_global_totals(self) -> List[ValidationWarning]:
        """Global totals must equal the sum over every active record."""
        warnings = []
        locked = 0
        weighted = 0
        for record in self.engine.registry.iter_all():
            if record.is_active:
                locked += record.amount
                weighted += record.weighted_amount

        if self.engine.total_locked != locked:
            warnings.append(ValidationWarning(
                severity="error",
                category="conservation",
                message="total_locked does not match active records",
                details=f"total_locked={self.engine.total_locked}, sum={locked}"
            ))
        if self.engine.total_locked_weighted != weighted:
            warnings.append(ValidationWarning(
                severity="error",
                category="conservation",
                message="total_locked_weighted does not match active records",
                details=f"total_locked_weighted={self.engine.total_locked_weighted}, sum={weighted}"
            ))
        return warnings

    def check_record_states(self) -> List[ValidationWarning]:
        """Late-exited records must carry an unlock time; amounts must be positive."""
        warnings = []
        for record in self.engine.registry.iter_all():
            if record.exited_late and record.is_active:
                warnings.append(ValidationWarning(
                    severity="error",
                    category="state",
                    message=f"Lock {record.id} is late-exited but still active",
                ))
            if record.amount <= 0:
                warnings.append(ValidationWarning(
                    severity="error",
                    category="state",
                    message=f"Lock {record.id} has non-positive amount",
                    details=f"amount={record.amount}"
                ))
        return warnings

    def check_custody(self) -> List[ValidationWarning]:
        """Custody must cover every locked and maturing amount plus tracked rewards."""
        warnings = []
        engine = self.engine

        if engine.stake_token is not None:
            owed = sum(r.amount for r in engine.registry.iter_all())
            held = engine.ledger.balance_of(engine.address, engine.stake_token)
            if held < owed:
                warnings.append(ValidationWarning(
                    severity="error",
                    category="custody",
                    message="Stake token custody below locked and maturing amounts",
                    details=f"held={held}, owed={owed}"
                ))

        for token, channel in engine.rewards.channels.items():
            held = engine.ledger.balance_of(engine.address, token)
            if channel.tracked_balance > held:
                warnings.append(ValidationWarning(
                    severity="error",
                    category="custody",
                    message=f"Tracked {token} rewards exceed custody",
                    details=f"tracked={channel.tracked_balance}, held={held}"
                ))
        return warnings

    def check_reward_channels(self) -> List[ValidationWarning]:
        """Flag reward inflow that was stranded while nothing was staked."""
        warnings = []
        for token, channel in self.engine.rewards.channels.items():
            if channel.absorbed > 0:
                warnings.append(ValidationWarning(
                    severity="warning",
                    category="rewards",
                    message=f"{token} inflow arrived with no weighted stake and was not distributed",
                    details=f"absorbed={channel.absorbed}"
                ))
        return warnings

    def run_all_checks(self) -> List[ValidationWarning]:
        """Run every check against one consistent view of the engine."""
        warnings = []
        with self.engine.consistent_view():
            warnings.extend(self.check_account_balances())
            warnings.extend(self.check_global_totals())
            warnings.extend(self.check_record_states())
            warnings.extend(self.check_custody())
            warnings.extend(self.check_reward_channels())
        return warnings


def validate_engine(engine: LockEngine, include_warnings: bool = True) -> List[ValidationWarning]:
    """
    Validate engine state.

    Args:
        engine: Engine to inspect
        include_warnings: Keep non-fatal findings alongside errors

    Returns:
        List of validation warnings
    """
    results = InvariantChecker(engine).run_all_checks()
    if not include_warnings:
        results = [w for w in results if w.severity == "error"]
    return results
