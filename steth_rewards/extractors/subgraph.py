from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from steth_rewards.models import (
    BaseState,
    RebaseEntity,
    TokenRebased,
    TransferEntity,
    TransferShares,
)
from steth_rewards.transformers.share_rate import shares_to_steth
from steth_rewards.utils.fanout import deadline_after, gather, remaining
from steth_rewards.utils.http import HttpClient


TRANSFER_FIELDS = """
    id
    from
    to
    value
    shares
    sharesAfterIncrease
    sharesAfterDecrease
    balanceAfterIncrease
    balanceAfterDecrease
    totalPooledEther
    totalShares
    block
    blockTime
    logIndex
    transactionHash
"""

REBASE_FIELDS = """
    id
    totalPooledEtherBefore
    totalPooledEtherAfter
    totalSharesBefore
    totalSharesAfter
    apr
    block
    blockTime
    logIndex
    transactionHash
"""

Q_LAST_INDEXED = """
query {
  _meta { block { number } }
}
"""

Q_TRANSFERS_PAGE = f"""
query($address: Bytes!, $lo: BigInt!, $hi: BigInt!, $afterId: ID!, $n: Int!) {{
  lidoTransfers(first: $n, orderBy: id, orderDirection: asc,
      where: {{ or: [
        {{ from: $address, block_gte: $lo, block_lte: $hi, id_gt: $afterId }},
        {{ to: $address, block_gte: $lo, block_lte: $hi, id_gt: $afterId }}
      ] }}) {{
    {TRANSFER_FIELDS}
  }}
}}
"""

Q_REBASES_PAGE = f"""
query($lo: BigInt!, $hi: BigInt!, $afterId: ID!, $n: Int!) {{
  totalRewards(first: $n, orderBy: id, orderDirection: asc,
      where: {{ block_gte: $lo, block_lte: $hi, id_gt: $afterId }}) {{
    {REBASE_FIELDS}
  }}
}}
"""

Q_LAST_TRANSFER_BLOCK = """
query($address: Bytes!, $block: BigInt!) {
  lidoTransfers(first: 1, orderBy: block, orderDirection: desc,
      where: { or: [{ from: $address, block_lt: $block }, { to: $address, block_lt: $block }] }) {
    block
  }
}
"""

Q_TRANSFERS_AT_BLOCK = f"""
query($address: Bytes!, $block: BigInt!) {{
  lidoTransfers(first: 1000, where: {{ or: [{{ from: $address, block: $block }}, {{ to: $address, block: $block }}] }}) {{
    {TRANSFER_FIELDS}
  }}
}}
"""

Q_LAST_REBASE = f"""
query($block: BigInt!) {{
  totalRewards(first: 1, orderBy: block, orderDirection: desc, where: {{ block_lt: $block }}) {{
    {REBASE_FIELDS}
  }}
}}
"""


def parse_transfer(item: Dict[str, Any]) -> TransferEntity:
    return TransferEntity(
        from_address=item["from"].lower(),
        to_address=item["to"].lower(),
        value=int(item["value"]),
        shares=int(item["shares"]),
        shares_after_increase=int(item.get("sharesAfterIncrease") or 0),
        shares_after_decrease=int(item.get("sharesAfterDecrease") or 0),
        balance_after_increase=int(item.get("balanceAfterIncrease") or 0),
        balance_after_decrease=int(item.get("balanceAfterDecrease") or 0),
        total_pooled_ether=int(item["totalPooledEther"]),
        total_shares=int(item["totalShares"]),
        block_number=int(item["block"]),
        log_index=int(item["logIndex"]),
        tx_hash=item.get("transactionHash", "").lower(),
        block_time=int(item.get("blockTime") or 0),
    )


def parse_rebase(item: Dict[str, Any]) -> RebaseEntity:
    return RebaseEntity(
        total_pooled_ether_before=int(item["totalPooledEtherBefore"]),
        total_pooled_ether_after=int(item["totalPooledEtherAfter"]),
        total_shares_before=int(item["totalSharesBefore"]),
        total_shares_after=int(item["totalSharesAfter"]),
        apr=str(item.get("apr", "0")),
        block_number=int(item["block"]),
        log_index=int(item["logIndex"]),
        tx_hash=item.get("transactionHash", "").lower(),
        block_time=int(item.get("blockTime") or 0),
    )


def transfer_event(entity: TransferEntity) -> TransferShares:
    return TransferShares(
        from_address=entity.from_address,
        to_address=entity.to_address,
        shares_value=entity.shares,
        block_number=entity.block_number,
        log_index=entity.log_index,
        tx_hash=entity.tx_hash,
        entity=entity,
    )


def rebase_event(entity: RebaseEntity) -> TokenRebased:
    return TokenRebased(
        post_total_ether=entity.total_pooled_ether_after,
        post_total_shares=entity.total_shares_after,
        block_number=entity.block_number,
        log_index=entity.log_index,
        tx_hash=entity.tx_hash,
        pre_total_shares=entity.total_shares_before,
        pre_total_ether=entity.total_pooled_ether_before,
        entity=entity,
    )


class SubgraphClient:
    def __init__(self, client: HttpClient) -> None:
        self.client = client

    def last_indexed_block(self) -> int:
        data = self.client.graphql(Q_LAST_INDEXED)
        return int(data["_meta"]["block"]["number"])

    def _paginate(self, query: str, key: str, variables: Dict[str, Any], page_size: int) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        after_id = ""
        page_count = 0
        while True:
            data = self.client.graphql(query, {**variables, "afterId": after_id, "n": page_size})
            page = data.get(key) or []
            items.extend(page)
            page_count += 1
            if len(page) < page_size:
                break
            after_id = page[-1]["id"]
            if page_count % 10 == 0:
                print(f"  📄 Processed {page_count} pages of {key}...")
        return items

    def transfers_in_range(self, account: str, from_block: int, to_block: int, page_size: int) -> List[TransferEntity]:
        variables = {"address": account.lower(), "lo": str(from_block), "hi": str(to_block)}
        return [parse_transfer(item) for item in self._paginate(Q_TRANSFERS_PAGE, "lidoTransfers", variables, page_size)]

    def rebases_in_range(self, from_block: int, to_block: int, page_size: int) -> List[RebaseEntity]:
        variables = {"lo": str(from_block), "hi": str(to_block)}
        return [parse_rebase(item) for item in self._paginate(Q_REBASES_PAGE, "totalRewards", variables, page_size)]

    def last_transfer_before(self, account: str, block: int) -> Optional[TransferEntity]:
        address = account.lower()
        found = self.client.graphql(Q_LAST_TRANSFER_BLOCK, {"address": address, "block": str(block)})
        if not found.get("lidoTransfers"):
            return None
        last_block = found["lidoTransfers"][0]["block"]
        # several transfers can share the block; the last log index wins
        data = self.client.graphql(Q_TRANSFERS_AT_BLOCK, {"address": address, "block": last_block})
        transfers = [parse_transfer(item) for item in data.get("lidoTransfers") or []]
        if not transfers:
            return None
        return max(transfers, key=lambda t: t.log_index)

    def last_rebase_before(self, block: int) -> Optional[RebaseEntity]:
        data = self.client.graphql(Q_LAST_REBASE, {"block": str(block)})
        items = data.get("totalRewards") or []
        return parse_rebase(items[0]) if items else None


@dataclass
class SubgraphEvents:
    base: BaseState
    transfers: List[TransferShares]
    rebases: List[TokenRebased]
    to_block: int
    last_indexed_block: int


def base_state_from_entities(
    account: str,
    transfer: Optional[TransferEntity],
    rebase: Optional[RebaseEntity],
) -> BaseState:
    """Seed the fold from the last transfer / rebase before the range."""
    account = account.lower()
    base = BaseState()
    if transfer is not None:
        if transfer.to_address == account:
            base.balance_shares = transfer.shares_after_increase
            base.balance = transfer.balance_after_increase
        elif transfer.from_address == account:
            base.balance_shares = transfer.shares_after_decrease
            base.balance = transfer.balance_after_decrease
    if rebase is not None:
        base.total_ether = rebase.total_pooled_ether_after
        base.total_shares = rebase.total_shares_after
        # the rebase may postdate the transfer, so recount the balance with its totals
        base.balance = shares_to_steth(base.balance_shares, base.total_ether, base.total_shares)
    return base


class SubgraphEventSource:
    """Base state and event streams for one account from the Lido subgraph.

    `client` provides the SubgraphClient methods.
    """

    def __init__(self, client) -> None:
        self.client = client

    def fetch(
        self,
        account: str,
        from_block: int,
        to_block: int,
        step: int,
        timeout: Optional[float] = None,
    ) -> SubgraphEvents:
        client = self.client
        deadline = deadline_after(timeout)
        (last_indexed_block,) = gather([client.last_indexed_block], timeout=remaining(deadline))
        capped_to_block = min(to_block, last_indexed_block)
        if capped_to_block < to_block:
            print(f"  ℹ️ Subgraph indexed up to {last_indexed_block}, capping toBlock {to_block} -> {capped_to_block}")
        print(f"  🔍 Subgraph scan {account[:10]}... blocks {from_block}-{capped_to_block} (page {step})")

        transfers, rebases, initial_transfer, initial_rebase = gather(
            [
                lambda: client.transfers_in_range(account, from_block, capped_to_block, step),
                lambda: client.rebases_in_range(from_block, capped_to_block, step),
                lambda: client.last_transfer_before(account, from_block),
                lambda: client.last_rebase_before(from_block),
            ],
            timeout=remaining(deadline),
        )
        print(f"  ✅ Found {len(transfers)} transfers and {len(rebases)} rebases")
        return SubgraphEvents(
            base=base_state_from_entities(account, initial_transfer, initial_rebase),
            transfers=[transfer_event(t) for t in transfers],
            rebases=[rebase_event(r) for r in rebases],
            to_block=capped_to_block,
            last_indexed_block=last_indexed_block,
        )
