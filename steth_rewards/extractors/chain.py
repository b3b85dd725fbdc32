from dataclasses import dataclass
from typing import List, Optional

from steth_rewards.errors import NotSupportedError
from steth_rewards.models import BaseState, TokenRebased, TransferShares
from steth_rewards.transformers.share_rate import shares_to_steth
from steth_rewards.utils.chunks import request_with_block_step
from steth_rewards.utils.fanout import gather


@dataclass
class ChainEvents:
    base: BaseState
    transfers_out: List[TransferShares]
    transfers_in: List[TransferShares]
    rebases: List[TokenRebased]


class ChainEventSource:
    """Base state and event streams for one account, read straight from the node.

    `reader` provides read_share_balance / read_total_supply_pair /
    query_transfers / query_rebases (see RpcReader).
    """

    def __init__(self, reader, earliest_rebase_block: int) -> None:
        self.reader = reader
        self.earliest_rebase_block = earliest_rebase_block

    def check_range(self, from_block: int) -> None:
        if from_block < self.earliest_rebase_block:
            raise NotSupportedError(
                f"Cannot index events earlier than first TokenRebased event at block {self.earliest_rebase_block}"
            )

    def fetch(
        self,
        account: str,
        from_block: int,
        to_block: int,
        step: int,
        timeout: Optional[float] = None,
    ) -> ChainEvents:
        self.check_range(from_block)
        pre_block = max(from_block - 1, 0)
        print(f"  🔍 Chain scan {account[:10]}... blocks {from_block}-{to_block} (step {step}, base @ {pre_block})")

        reader = self.reader
        balance_shares, (total_ether, total_shares), transfers_out, transfers_in, rebases = gather(
            [
                lambda: reader.read_share_balance(account, pre_block),
                lambda: reader.read_total_supply_pair(pre_block),
                lambda: request_with_block_step(
                    step, from_block, to_block, lambda lo, hi: reader.query_transfers("from", account, lo, hi)
                ),
                lambda: request_with_block_step(
                    step, from_block, to_block, lambda lo, hi: reader.query_transfers("to", account, lo, hi)
                ),
                lambda: request_with_block_step(
                    step, from_block, to_block, lambda lo, hi: reader.query_rebases(lo, hi)
                ),
            ],
            timeout=timeout,
        )

        base = BaseState(
            balance_shares=balance_shares,
            balance=shares_to_steth(balance_shares, total_ether, total_shares),
            total_ether=total_ether,
            total_shares=total_shares,
        )
        print(
            f"  ✅ Found {len(transfers_in)} incoming, {len(transfers_out)} outgoing transfers "
            f"and {len(rebases)} rebases"
        )
        return ChainEvents(base=base, transfers_out=transfers_out, transfers_in=transfers_in, rebases=rebases)
