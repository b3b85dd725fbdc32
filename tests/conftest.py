from typing import Dict, List, Optional, Tuple

import pytest

from steth_rewards.models import (
    ZERO_ADDRESS,
    RebaseEntity,
    TokenRebased,
    TransferEntity,
    TransferShares,
)

ACCOUNT = "0x1111111111111111111111111111111111111111"
OTHER = "0x2222222222222222222222222222222222222222"
WITHDRAWAL_QUEUE = "0x889edc2edab5f40e902b864ad4d7ade8e412f9b1"

BLOCK_TIME = 12
GENESIS_TIME = 1_600_000_000


class FakeChainReader:
    """In-memory stand-in for RpcReader."""

    def __init__(
        self,
        latest: int = 100,
        shares: Optional[Dict[int, int]] = None,
        totals: Optional[Dict[int, Tuple[int, int]]] = None,
        transfers: Optional[List[TransferShares]] = None,
        rebases: Optional[List[TokenRebased]] = None,
    ) -> None:
        self.latest = latest
        self.shares = shares or {}
        self.totals = totals or {}
        self.transfers = transfers or []
        self.rebases = rebases or []
        self.calls: List[tuple] = []

    def read_share_balance(self, account, block):
        self.calls.append(("sharesOf", account, block))
        return self.shares.get(block, 0)

    def read_total_supply_pair(self, block):
        self.calls.append(("totals", block))
        return self.totals.get(block, (0, 0))

    def read_block(self, block):
        self.calls.append(("block", block))
        if block == "pending":
            return {"number": None, "timestamp": GENESIS_TIME + (self.latest + 1) * BLOCK_TIME}
        number = self.latest if block in ("latest", "safe", "finalized") else int(block)
        return {"number": number, "timestamp": GENESIS_TIME + number * BLOCK_TIME}

    def latest_block_to_timestamp(self, timestamp):
        self.calls.append(("block_at", timestamp))
        number = max(min((timestamp - GENESIS_TIME) // BLOCK_TIME, self.latest), 0)
        return {"number": number, "timestamp": GENESIS_TIME + number * BLOCK_TIME}

    def query_transfers(self, direction, account, from_block, to_block):
        self.calls.append(("transfers", direction, from_block, to_block))
        key = "from_address" if direction == "from" else "to_address"
        return [
            t for t in self.transfers
            if getattr(t, key) == account.lower() and from_block <= t.block_number <= to_block
        ]

    def query_rebases(self, from_block, to_block):
        self.calls.append(("rebases", from_block, to_block))
        return [r for r in self.rebases if from_block <= r.block_number <= to_block]


class FakeSubgraphClient:
    """In-memory stand-in for SubgraphClient."""

    def __init__(
        self,
        last_indexed: int,
        transfers: Optional[List[TransferEntity]] = None,
        rebases: Optional[List[RebaseEntity]] = None,
    ) -> None:
        self.last_indexed = last_indexed
        self.transfers = transfers or []
        self.rebases = rebases or []
        self.calls: List[tuple] = []

    def _involves(self, transfer, account):
        return account.lower() in (transfer.from_address, transfer.to_address)

    def last_indexed_block(self):
        self.calls.append(("meta",))
        return self.last_indexed

    def transfers_in_range(self, account, from_block, to_block, page_size):
        self.calls.append(("transfers", from_block, to_block, page_size))
        return [
            t for t in self.transfers
            if self._involves(t, account) and from_block <= t.block_number <= to_block
        ]

    def rebases_in_range(self, from_block, to_block, page_size):
        self.calls.append(("rebases", from_block, to_block, page_size))
        return [r for r in self.rebases if from_block <= r.block_number <= to_block]

    def last_transfer_before(self, account, block):
        self.calls.append(("last_transfer", block))
        before = [t for t in self.transfers if self._involves(t, account) and t.block_number < block]
        return max(before, key=lambda t: (t.block_number, t.log_index)) if before else None

    def last_rebase_before(self, block):
        self.calls.append(("last_rebase", block))
        before = [r for r in self.rebases if r.block_number < block]
        return max(before, key=lambda r: (r.block_number, r.log_index)) if before else None


def transfer(from_address, to_address, shares, block, log_index=0):
    return TransferShares(
        from_address=from_address,
        to_address=to_address,
        shares_value=shares,
        block_number=block,
        log_index=log_index,
    )


def rebase(total_ether, total_shares, block, log_index=0):
    return TokenRebased(
        post_total_ether=total_ether,
        post_total_shares=total_shares,
        block_number=block,
        log_index=log_index,
    )


def rebase_entity(ether_before, ether_after, shares_before, shares_after, block, log_index=0):
    return RebaseEntity(
        total_pooled_ether_before=ether_before,
        total_pooled_ether_after=ether_after,
        total_shares_before=shares_before,
        total_shares_after=shares_after,
        apr="3.5",
        block_number=block,
        log_index=log_index,
    )


def transfer_entity(
    from_address,
    to_address,
    shares,
    value,
    block,
    log_index=0,
    shares_after_increase=0,
    shares_after_decrease=0,
    balance_after_increase=0,
    balance_after_decrease=0,
    total_pooled_ether=1000,
    total_shares=10000,
):
    return TransferEntity(
        from_address=from_address,
        to_address=to_address,
        value=value,
        shares=shares,
        shares_after_increase=shares_after_increase,
        shares_after_decrease=shares_after_decrease,
        balance_after_increase=balance_after_increase,
        balance_after_decrease=balance_after_decrease,
        total_pooled_ether=total_pooled_ether,
        total_shares=total_shares,
        block_number=block,
        log_index=log_index,
    )


@pytest.fixture
def submit_then_rebase_reader():
    """100 shares minted at block 10, ether 1000 -> 1100 at block 20, shares fixed at 10000."""
    return FakeChainReader(
        latest=50,
        totals={4: (1000, 10000)},
        transfers=[transfer(ZERO_ADDRESS, ACCOUNT, 100, block=10, log_index=3)],
        rebases=[rebase(1100, 10000, block=20, log_index=7)],
    )
