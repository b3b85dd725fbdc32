"""
Merge raw event streams and fold them into reward records.

Both event sources hand over `TransferShares` / `TokenRebased` events. Chain
events carry only share amounts and totals, so balances are derived from the
running totals. Subgraph events carry the entity they were built from, whose
pre-computed balances are taken as-is.
"""

from dataclasses import dataclass
from itertools import chain
from typing import Iterable, List, Tuple

from steth_rewards.errors import invariant
from steth_rewards.models import (
    ZERO_ADDRESS,
    BaseState,
    RawEvent,
    RewardRecord,
    TokenRebased,
    TransferShares,
    event_key,
)
from steth_rewards.transformers.share_rate import calc_share_rate, shares_to_steth


def merge_events(*streams: Iterable[RawEvent]) -> List[RawEvent]:
    """Chronological merge on (block_number, log_index). sorted() is stable."""
    return sorted(chain(*streams), key=event_key)


@dataclass
class FoldState:
    total_ether: int
    total_shares: int
    balance_shares: int
    balance: int

    @classmethod
    def from_base(cls, base: BaseState) -> "FoldState":
        return cls(
            total_ether=base.total_ether,
            total_shares=base.total_shares,
            balance_shares=base.balance_shares,
            balance=base.balance,
        )

    def to_steth(self, shares: int) -> int:
        return shares_to_steth(shares, self.total_ether, self.total_shares)

    @property
    def share_rate(self) -> int:
        return calc_share_rate(self.total_ether, self.total_shares)


def _classify(transfer: TransferShares, account: str, withdrawal_queue: str) -> Tuple[str, bool]:
    if transfer.to_address.lower() == account:
        return ("submit" if transfer.from_address.lower() == ZERO_ADDRESS else "transfer_in"), True
    if transfer.to_address.lower() == withdrawal_queue:
        return "withdrawal", False
    return "transfer_out", False


def _transfer_record(
    state: FoldState, transfer: TransferShares, account: str, withdrawal_queue: str
) -> RewardRecord:
    reward_type, incoming = _classify(transfer, account, withdrawal_queue)
    entity = transfer.entity

    if entity is not None:
        if incoming:
            change_shares = entity.shares
            balance_shares = entity.shares_after_increase
            change = entity.value
            balance = entity.balance_after_increase
        else:
            change_shares = -entity.shares
            balance_shares = entity.shares_after_decrease
            change = -entity.value
            balance = entity.balance_after_decrease
        share_rate = calc_share_rate(entity.total_pooled_ether, entity.total_shares)
    else:
        change_shares = transfer.shares_value if incoming else -transfer.shares_value
        balance_shares = state.balance_shares + change_shares
        # rate is unchanged by a transfer
        change = state.to_steth(change_shares)
        balance = state.to_steth(balance_shares)
        share_rate = state.share_rate

    state.balance_shares = balance_shares
    state.balance = balance
    return RewardRecord(
        type=reward_type,
        balance_shares=balance_shares,
        change_shares=change_shares,
        change=change,
        balance=balance,
        share_rate=share_rate,
        original_event=entity if entity is not None else transfer,
    )


def _rebase_record(state: FoldState, rebase: TokenRebased) -> RewardRecord:
    old_balance = state.balance
    state.total_ether = rebase.post_total_ether
    state.total_shares = rebase.post_total_shares
    new_balance = state.to_steth(state.balance_shares)
    state.balance = new_balance
    return RewardRecord(
        type="rebase",
        balance_shares=state.balance_shares,
        change_shares=0,
        change=new_balance - old_balance,
        balance=new_balance,
        share_rate=state.share_rate,
        original_event=rebase.entity if rebase.entity is not None else rebase,
    )


def fold_rewards(
    events: Iterable[RawEvent],
    account: str,
    withdrawal_queue: str,
    base: BaseState,
) -> Tuple[List[RewardRecord], int]:
    """Walk merged events in order. Returns the records and the summed rebase change."""
    account = account.lower()
    withdrawal_queue = withdrawal_queue.lower()
    state = FoldState.from_base(base)
    total_rewards = 0
    records: List[RewardRecord] = []

    for event in events:
        if isinstance(event, TransferShares):
            records.append(_transfer_record(state, event, account, withdrawal_queue))
        elif isinstance(event, TokenRebased):
            record = _rebase_record(state, event)
            total_rewards += record.change
            records.append(record)
        else:
            invariant(False, f"Impossible event: {type(event).__name__}")

    return records, total_rewards


def apply_filters(
    records: List[RewardRecord],
    include_zero_rebases: bool = False,
    include_only_rebases: bool = False,
) -> List[RewardRecord]:
    # NOTE: include_only_rebases=False keeps *only* rebases. Inverted relative to
    # the name but it is the long-standing default output; see DESIGN.md.
    if not include_only_rebases:
        records = [r for r in records if r.type == "rebase"]
    if not include_zero_rebases:
        records = [r for r in records if not (r.type == "rebase" and r.change == 0)]
    return records
