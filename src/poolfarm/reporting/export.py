"""Export functionality for CSV and JSON."""

import json
from dataclasses import asdict
from typing import Any, Dict, List

import pandas as pd

from ..simulation.runner import ScenarioResult


def snapshots_frame(result: ScenarioResult) -> pd.DataFrame:
    """Flatten per-step snapshots into one row per step, pool columns suffixed by id."""
    data: List[Dict[str, Any]] = []
    for snap in result.snapshots:
        row = {
            'step': snap.step,
            'time': snap.time,
            'action': snap.action,
            'pool': snap.pool,
            'account': snap.account,
            'amount': str(snap.amount),
            'result': str(snap.result),
            'error': snap.error,
            'total_weight': snap.total_weight,
            'reward_owed_total': str(snap.reward_owed_total),
            'reward_paid_total': str(snap.reward_paid_total),
        }
        for pool in snap.pools:
            pid = pool['pool_id']
            # 18-decimal integers overflow int64, keep them as text
            row[f'acc_per_share_{pid}'] = str(pool['acc_per_share'])
            row[f'staked_supply_{pid}'] = str(pool['staked_supply'])
            row[f'is_active_{pid}'] = pool['is_active']
        data.append(row)
    return pd.DataFrame(data)


def events_frame(result: ScenarioResult) -> pd.DataFrame:
    """One row per ledger event."""
    rows = [
        {
            'kind': event.kind,
            'time': event.time,
            'pool_id': event.pool_id,
            'account': event.account,
            'amount': str(event.amount),
            'data': json.dumps(event.data, sort_keys=True, default=str),
        }
        for event in result.events
    ]
    return pd.DataFrame(rows, columns=['kind', 'time', 'pool_id', 'account', 'amount', 'data'])


def export_csv(result: ScenarioResult, filepath: str):
    """Export scenario snapshots to CSV."""
    snapshots_frame(result).to_csv(filepath, index=False)


def export_events_csv(result: ScenarioResult, filepath: str):
    """Export the event log to CSV."""
    events_frame(result).to_csv(filepath, index=False)


def export_json(result: ScenarioResult, filepath: str):
    """Export scenario results to JSON."""
    export_data = {
        'config': result.config.to_dict(),
        'config_hash': result.config.compute_hash(),
        'snapshots': [asdict(snap) for snap in result.snapshots],
        'events': [asdict(event) for event in result.events],
        'warnings': [asdict(w) for w in result.warnings],
        'step_errors': result.step_errors,
        'final_metrics': result.final_metrics,
    }

    with open(filepath, 'w') as f:
        json.dump(export_data, f, indent=2, default=str)
