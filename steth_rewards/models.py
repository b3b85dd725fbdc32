from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union


ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

REWARD_TYPES = ("submit", "transfer_in", "transfer_out", "withdrawal", "rebase")


# Raw events

@dataclass
class TransferShares:
    from_address: str
    to_address: str
    shares_value: int
    block_number: int
    log_index: int
    tx_hash: str = ""
    # set when the transfer comes from the subgraph with balances already computed
    entity: Optional["TransferEntity"] = None


@dataclass
class TokenRebased:
    post_total_ether: int
    post_total_shares: int
    block_number: int
    log_index: int
    tx_hash: str = ""
    report_timestamp: int = 0
    time_elapsed: int = 0
    pre_total_shares: int = 0
    pre_total_ether: int = 0
    shares_minted_as_fees: int = 0
    entity: Optional["RebaseEntity"] = None


# Subgraph entities (denormalized)

@dataclass
class TransferEntity:
    from_address: str
    to_address: str
    value: int
    shares: int
    shares_after_increase: int
    shares_after_decrease: int
    balance_after_increase: int
    balance_after_decrease: int
    total_pooled_ether: int
    total_shares: int
    block_number: int
    log_index: int
    tx_hash: str = ""
    block_time: int = 0


@dataclass
class RebaseEntity:
    total_pooled_ether_before: int
    total_pooled_ether_after: int
    total_shares_before: int
    total_shares_after: int
    apr: str
    block_number: int
    log_index: int
    tx_hash: str = ""
    block_time: int = 0


RawEvent = Union[TransferShares, TokenRebased]


def event_key(event: Any) -> tuple:
    return (event.block_number, event.log_index)


# Query arguments

@dataclass
class BlockArgument:
    """Either a block (number or tag such as "latest") or a unix timestamp."""

    block: Union[int, str, None] = None
    timestamp: Optional[int] = None


@dataclass
class BackArgument:
    blocks: Optional[int] = None
    days: Optional[int] = None
    seconds: Optional[int] = None


@dataclass
class RewardQuery:
    account: str
    from_: Optional[BlockArgument] = None
    to: Optional[BlockArgument] = None
    back: Optional[BackArgument] = None
    step: Optional[int] = None
    include_zero_rebases: bool = False
    include_only_rebases: bool = False


# Results

@dataclass
class BaseState:
    balance_shares: int = 0
    balance: int = 0
    total_ether: int = 0
    total_shares: int = 0


@dataclass
class RewardRecord:
    type: str
    balance_shares: int
    change_shares: int
    change: int
    balance: int
    share_rate: int
    original_event: Any

    @property
    def block_number(self) -> int:
        return self.original_event.block_number

    @property
    def log_index(self) -> int:
        return self.original_event.log_index

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "block_number": self.block_number,
            "log_index": self.log_index,
            "tx_hash": getattr(self.original_event, "tx_hash", ""),
            "balance_shares": str(self.balance_shares),
            "change_shares": str(self.change_shares),
            "change": str(self.change),
            "balance": str(self.balance),
            "share_rate": str(self.share_rate),
        }


@dataclass
class RewardLedger:
    rewards: List[RewardRecord]
    base_balance: int
    base_balance_shares: int
    base_share_rate: int
    total_rewards: int
    from_block: int
    to_block: int
    last_indexed_block: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rewards": [r.to_dict() for r in self.rewards],
            "base_balance": str(self.base_balance),
            "base_balance_shares": str(self.base_balance_shares),
            "base_share_rate": str(self.base_share_rate),
            "total_rewards": str(self.total_rewards),
            "from_block": self.from_block,
            "to_block": self.to_block,
            "last_indexed_block": self.last_indexed_block,
        }
