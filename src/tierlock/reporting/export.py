"""Export functionality for CSV and JSON."""

import json
from dataclasses import asdict
from typing import List

import pandas as pd

from ..engine.locker import LockEngine
from ..simulation.runner import SimulationResult

SECONDS_PER_DAY = 86_400


def snapshots_to_frame(result: SimulationResult) -> pd.DataFrame:
    """One row per step; rewards paid are spread into ``paid_<token>`` columns."""
    rows = []
    start = result.config.simulation.start_time
    for snap in result.snapshots:
        row = {
            'step': snap.step,
            't': snap.t,
            't_days': (snap.t - start) / SECONDS_PER_DAY,
            'total_locked': snap.total_locked,
            'total_locked_weighted': snap.total_locked_weighted,
            'active_locks': snap.active_locks,
            'maturing_locks': snap.maturing_locks,
            'treasury_balance': snap.treasury_balance,
        }
        for token, paid in snap.rewards_paid.items():
            row[f'paid_{token}'] = paid
        rows.append(row)
    return pd.DataFrame(rows)


def locks_to_frame(engine: LockEngine, accounts: List[str] = None) -> pd.DataFrame:
    """Every record held by ``accounts`` (default: all owners), with its state."""
    columns = [
        'owner', 'id', 'amount', 'start_time', 'period', 'multiplier',
        'unlock_time', 'exited_late', 'state',
    ]
    if accounts is None:
        accounts = engine.registry.owners()

    rows = []
    for owner in accounts:
        for record in engine.registry.iter_owner(owner):
            row = asdict(record)
            row['owner'] = owner
            row['state'] = 'active' if record.is_active else 'maturing'
            rows.append(row)
    return pd.DataFrame(rows, columns=columns)


def export_csv(result: SimulationResult, filepath: str):
    """Export per-step snapshots to CSV."""
    df = snapshots_to_frame(result)
    df.to_csv(filepath, index=False)


def export_json(result: SimulationResult, filepath: str):
    """Export config, snapshots and summary to JSON."""
    export_data = {
        'config': result.config.to_dict(),
        'config_hash': result.config.compute_hash(),
        'snapshots': [asdict(s) for s in result.snapshots],
        'action_counts': result.action_counts,
        'rejections': result.rejections,
        'invariant_errors': result.invariant_errors,
        'final_metrics': result.final_metrics,
    }

    with open(filepath, 'w') as f:
        json.dump(export_data, f, indent=2)
