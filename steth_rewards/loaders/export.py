import json
from pathlib import Path
from typing import Any, Dict

import pandas as pd
import pandera as pa
from pandera import Check, Column

from steth_rewards.models import REWARD_TYPES, RewardLedger


INT_STRING = r"^-?\d+$"

REWARD_SCHEMA = pa.DataFrameSchema(
    {
        "type": Column(str, Check.isin(REWARD_TYPES)),
        "block_number": Column(int, Check.ge(0)),
        "log_index": Column(int, Check.ge(0)),
        "tx_hash": Column(str, nullable=True),
        # wei / share amounts overflow int64, keep them as strings
        "balance_shares": Column(str, Check.str_matches(INT_STRING)),
        "change_shares": Column(str, Check.str_matches(INT_STRING)),
        "change": Column(str, Check.str_matches(INT_STRING)),
        "balance": Column(str, Check.str_matches(INT_STRING)),
        "share_rate": Column(str, Check.str_matches(INT_STRING)),
    }
)


def ledger_to_dataframe(ledger: RewardLedger) -> pd.DataFrame:
    rows = [record.to_dict() for record in ledger.rewards]
    if not rows:
        return pd.DataFrame(columns=list(REWARD_SCHEMA.columns.keys()))
    df = pd.DataFrame(rows)
    return REWARD_SCHEMA.validate(df)


def ledger_summary(ledger: RewardLedger) -> Dict[str, Any]:
    summary = ledger.to_dict()
    summary.pop("rewards")
    summary["records"] = len(ledger.rewards)
    return summary


def write_csv(ledger: RewardLedger, path: str) -> Path:
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    ledger_to_dataframe(ledger).to_csv(out, index=False)
    print(f"  💾 Wrote {len(ledger.rewards)} rows to {out}")
    return out


def write_json(ledger: RewardLedger, path: str) -> Path:
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(json.dumps(ledger.to_dict(), indent=2))
    print(f"  💾 Wrote ledger with {len(ledger.rewards)} rewards to {out}")
    return out
