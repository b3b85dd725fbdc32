"""
Reward history for a stETH holder.

    service = RewardsService.from_network(load_network("mainnet"))
    ledger = service.get_rewards_from_chain(RewardQuery(account=..., back=BackArgument(days=7)))

Both entry points return a RewardLedger with the same accounting. The chain
path derives balances from share totals read at each block; the subgraph path
trusts the balances the indexer stored with each transfer.
"""

from typing import Optional

from steth_rewards.config import NetworkConfig
from steth_rewards.errors import NotSupportedError
from steth_rewards.extractors.chain import ChainEventSource
from steth_rewards.extractors.rpc import ContractResolver, RpcReader
from steth_rewards.extractors.subgraph import SubgraphClient, SubgraphEventSource
from steth_rewards.models import RewardLedger, RewardQuery
from steth_rewards.range_resolver import RangeResolver
from steth_rewards.transformers.rewards import apply_filters, fold_rewards, merge_events
from steth_rewards.transformers.share_rate import calc_share_rate
from steth_rewards.utils.cache import ReadThroughCache
from steth_rewards.utils.fanout import deadline_after, gather, remaining
from steth_rewards.utils.http import HttpClient


class RewardsService:
    def __init__(
        self,
        range_resolver: RangeResolver,
        withdrawal_queue,
        chain_source: Optional[ChainEventSource] = None,
        subgraph_source: Optional[SubgraphEventSource] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.range_resolver = range_resolver
        # address string or a zero-arg callable resolving it
        self._withdrawal_queue = withdrawal_queue
        self.chain_source = chain_source
        self.subgraph_source = subgraph_source
        self.timeout = timeout

    @classmethod
    def from_network(
        cls,
        network: NetworkConfig,
        timeout: Optional[float] = None,
        cache: Optional[ReadThroughCache] = None,
    ) -> "RewardsService":
        cache = cache or ReadThroughCache()
        rpc_client = HttpClient(network.rpc_url, rate_limit_per_second=network.rate_limit_per_second)
        resolver = ContractResolver(rpc_client, network, cache=cache)
        reader = RpcReader(rpc_client, resolver.steth(), cache=cache)
        subgraph_source = None
        if network.subgraph_url:
            subgraph_client = HttpClient(network.subgraph_url, rate_limit_per_second=network.rate_limit_per_second)
            subgraph_source = SubgraphEventSource(SubgraphClient(subgraph_client))
        return cls(
            range_resolver=RangeResolver(reader, default_step=network.default_step),
            withdrawal_queue=resolver.withdrawal_queue,
            chain_source=ChainEventSource(reader, network.earliest_rebase_block),
            subgraph_source=subgraph_source,
            timeout=timeout,
        )

    def withdrawal_queue_address(self) -> str:
        if callable(self._withdrawal_queue):
            return self._withdrawal_queue()
        return self._withdrawal_queue

    def get_rewards_from_chain(self, query: RewardQuery) -> RewardLedger:
        if self.chain_source is None:
            raise NotSupportedError("No chain source configured for this network")
        deadline = deadline_after(self.timeout)
        (resolved,) = gather([lambda: self.range_resolver.resolve(query)], timeout=remaining(deadline))
        self.chain_source.check_range(resolved.from_block)
        (withdrawal_queue,) = gather([self.withdrawal_queue_address], timeout=remaining(deadline))

        fetched = self.chain_source.fetch(
            query.account, resolved.from_block, resolved.to_block, resolved.step, timeout=remaining(deadline)
        )
        events = merge_events(fetched.transfers_in, fetched.transfers_out, fetched.rebases)
        records, total_rewards = fold_rewards(events, query.account, withdrawal_queue, fetched.base)

        return RewardLedger(
            rewards=apply_filters(records, resolved.include_zero_rebases, resolved.include_only_rebases),
            base_balance=fetched.base.balance,
            base_balance_shares=fetched.base.balance_shares,
            base_share_rate=calc_share_rate(fetched.base.total_ether, fetched.base.total_shares),
            total_rewards=total_rewards,
            from_block=resolved.from_block,
            to_block=resolved.to_block,
        )

    def get_rewards_from_subgraph(self, query: RewardQuery) -> RewardLedger:
        if self.subgraph_source is None:
            raise NotSupportedError("No subgraph configured for this network")
        deadline = deadline_after(self.timeout)
        (resolved,) = gather([lambda: self.range_resolver.resolve(query)], timeout=remaining(deadline))
        (withdrawal_queue,) = gather([self.withdrawal_queue_address], timeout=remaining(deadline))

        fetched = self.subgraph_source.fetch(
            query.account, resolved.from_block, resolved.to_block, resolved.step, timeout=remaining(deadline)
        )
        events = merge_events(fetched.rebases, fetched.transfers)
        records, total_rewards = fold_rewards(events, query.account, withdrawal_queue, fetched.base)

        return RewardLedger(
            rewards=apply_filters(records, resolved.include_zero_rebases, resolved.include_only_rebases),
            base_balance=fetched.base.balance,
            base_balance_shares=fetched.base.balance_shares,
            base_share_rate=calc_share_rate(fetched.base.total_ether, fetched.base.total_shares),
            total_rewards=total_rewards,
            from_block=resolved.from_block,
            to_block=fetched.to_block,
            last_indexed_block=fetched.last_indexed_block,
        )
