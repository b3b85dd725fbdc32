import threading

import pytest

from conftest import (
    ACCOUNT,
    OTHER,
    WITHDRAWAL_QUEUE,
    FakeChainReader,
    FakeSubgraphClient,
    rebase_entity,
    transfer_entity,
)
from steth_rewards.errors import NotSupportedError
from steth_rewards.extractors.chain import ChainEventSource
from steth_rewards.extractors.subgraph import SubgraphEventSource, base_state_from_entities
from steth_rewards.handlers.envelope import call_with_envelope
from steth_rewards.models import ZERO_ADDRESS, BackArgument, BlockArgument, RewardQuery
from steth_rewards.range_resolver import RangeResolver
from steth_rewards.rewards import RewardsService


def _service(client, latest=500):
    return RewardsService(
        range_resolver=RangeResolver(FakeChainReader(latest=latest)),
        withdrawal_queue=WITHDRAWAL_QUEUE,
        subgraph_source=SubgraphEventSource(client),
    )


def _query(from_block, to_block, **kwargs):
    return RewardQuery(
        account=ACCOUNT,
        from_=BlockArgument(block=from_block),
        to=BlockArgument(block=to_block),
        **kwargs,
    )


def _submit_then_rebase_client(last_indexed=100):
    return FakeSubgraphClient(
        last_indexed=last_indexed,
        transfers=[
            transfer_entity(
                ZERO_ADDRESS,
                ACCOUNT,
                shares=100,
                value=10,
                block=10,
                log_index=3,
                shares_after_increase=100,
                balance_after_increase=10,
            )
        ],
        rebases=[
            rebase_entity(1000, 900, 10000, 10000, block=2),
            rebase_entity(1000, 1100, 10000, 10000, block=20, log_index=7),
        ],
    )


def test_submit_then_rebase():
    ledger = _service(_submit_then_rebase_client()).get_rewards_from_subgraph(
        _query(5, 30, include_only_rebases=True)
    )
    submit, reward = ledger.rewards
    assert (submit.type, submit.balance_shares, submit.change, submit.balance) == ("submit", 100, 10, 10)
    assert (reward.type, reward.change, reward.balance, reward.balance_shares) == ("rebase", 1, 11, 100)
    assert ledger.total_rewards == 1
    assert ledger.base_share_rate == 9 * 10**25
    assert reward.original_event.apr == "3.5"


def test_to_block_capped_to_last_indexed():
    client = _submit_then_rebase_client(last_indexed=25)
    ledger = _service(client).get_rewards_from_subgraph(_query(5, 300))
    assert ledger.to_block == 25
    assert ledger.last_indexed_block == 25
    assert ("rebases", 5, 25, 1000) in client.calls
    assert ("transfers", 5, 25, 1000) in client.calls


def test_step_used_as_page_size():
    client = _submit_then_rebase_client()
    _service(client).get_rewards_from_subgraph(_query(5, 30, step=250))
    assert ("rebases", 5, 30, 250) in client.calls


def test_base_state_from_last_transfer_and_rebase():
    client = FakeSubgraphClient(
        last_indexed=100,
        transfers=[
            transfer_entity(OTHER, ACCOUNT, 300, 30, block=3, shares_after_increase=300, balance_after_increase=30),
            transfer_entity(ACCOUNT, OTHER, 100, 10, block=6, shares_after_decrease=200, balance_after_decrease=20),
        ],
        rebases=[rebase_entity(1000, 1200, 10000, 10000, block=8)],
    )
    ledger = _service(client).get_rewards_from_subgraph(_query(10, 20, include_only_rebases=True))
    assert ledger.base_balance_shares == 200
    # recounted with the later rebase totals
    assert ledger.base_balance == 24
    assert ledger.base_share_rate == 12 * 10**25
    assert ("last_transfer", 10) in client.calls
    assert ("last_rebase", 10) in client.calls


def test_no_prior_activity_defaults_to_zero():
    ledger = _service(FakeSubgraphClient(last_indexed=100)).get_rewards_from_subgraph(_query(10, 20))
    assert (ledger.base_balance, ledger.base_balance_shares, ledger.base_share_rate) == (0, 0, 0)
    assert ledger.rewards == []
    assert ledger.total_rewards == 0


def test_rebase_without_transfer_in_range():
    client = FakeSubgraphClient(
        last_indexed=100,
        transfers=[transfer_entity(OTHER, ACCOUNT, 500, 50, block=3, shares_after_increase=500, balance_after_increase=50)],
        rebases=[
            rebase_entity(900, 1000, 10000, 10000, block=4),
            rebase_entity(1000, 1040, 10000, 10000, block=12),
            rebase_entity(1040, 1040, 10000, 10000, block=13),
        ],
    )
    ledger = _service(client).get_rewards_from_subgraph(_query(10, 20))
    assert [(r.block_number, r.change, r.balance) for r in ledger.rewards] == [(12, 2, 52)]
    assert ledger.total_rewards == 2


def test_transfer_out_and_withdrawal_types():
    client = FakeSubgraphClient(
        last_indexed=100,
        transfers=[
            transfer_entity(ACCOUNT, OTHER, 10, 1, block=11, shares_after_decrease=90, balance_after_decrease=9),
            transfer_entity(ACCOUNT, WITHDRAWAL_QUEUE, 40, 4, block=12, shares_after_decrease=50, balance_after_decrease=5),
        ],
    )
    ledger = _service(client).get_rewards_from_subgraph(_query(10, 20, include_only_rebases=True))
    assert [(r.type, r.change_shares, r.change) for r in ledger.rewards] == [
        ("transfer_out", -10, -1),
        ("withdrawal", -40, -4),
    ]


def test_base_state_ignores_unrelated_transfer():
    unrelated = transfer_entity(OTHER, OTHER, 5, 5, block=1, shares_after_increase=5, balance_after_increase=5)
    base = base_state_from_entities(ACCOUNT, unrelated, None)
    assert (base.balance_shares, base.balance) == (0, 0)


def test_base_state_includes_events_at_block_before_range():
    client = FakeSubgraphClient(
        last_indexed=100,
        transfers=[
            transfer_entity(OTHER, ACCOUNT, 150, 15, block=9, shares_after_increase=150, balance_after_increase=15),
            transfer_entity(
                OTHER, ACCOUNT, 50, 5, block=9, log_index=1, shares_after_increase=200, balance_after_increase=20
            ),
        ],
        rebases=[rebase_entity(1000, 1200, 10000, 10000, block=9, log_index=4)],
    )
    from_subgraph = _service(client).get_rewards_from_subgraph(_query(10, 20))
    assert from_subgraph.base_balance_shares == 200
    assert from_subgraph.base_balance == 24

    reader = FakeChainReader(latest=500, shares={9: 200}, totals={9: (1200, 10000)})
    from_chain = RewardsService(
        range_resolver=RangeResolver(reader),
        withdrawal_queue=WITHDRAWAL_QUEUE,
        chain_source=ChainEventSource(reader, earliest_rebase_block=0),
    ).get_rewards_from_chain(_query(10, 20))
    assert (from_subgraph.base_balance, from_subgraph.base_balance_shares, from_subgraph.base_share_rate) == (
        from_chain.base_balance,
        from_chain.base_balance_shares,
        from_chain.base_share_rate,
    )


def test_caller_timeout_covers_range_resolution():
    release = threading.Event()
    reader = FakeChainReader(latest=500)
    reader.latest_block_to_timestamp = lambda ts: release.wait(2) or {"number": 1, "timestamp": ts}
    service = RewardsService(
        range_resolver=RangeResolver(reader),
        withdrawal_queue=WITHDRAWAL_QUEUE,
        subgraph_source=SubgraphEventSource(_submit_then_rebase_client()),
        timeout=0.1,
    )
    with pytest.raises(TimeoutError):
        service.get_rewards_from_subgraph(RewardQuery(account=ACCOUNT, back=BackArgument(seconds=120)))
    release.set()


def test_missing_subgraph_is_not_supported():
    service = RewardsService(range_resolver=RangeResolver(FakeChainReader()), withdrawal_queue=WITHDRAWAL_QUEUE)
    with pytest.raises(NotSupportedError):
        service.get_rewards_from_subgraph(_query(10, 20))
    result = call_with_envelope("Rewards", service.get_rewards_from_subgraph, _query(10, 20))
    assert (result["ok"], result["error"]) == (False, "NOT_SUPPORTED")
