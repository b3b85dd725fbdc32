import argparse
import json
from typing import Optional, Union

from dotenv import load_dotenv
load_dotenv()

from steth_rewards.config import DEFAULT_CONFIG_PATH, load_network
from steth_rewards.handlers.envelope import call_with_envelope
from steth_rewards.loaders.export import ledger_summary, write_csv, write_json
from steth_rewards.models import BackArgument, BlockArgument, RewardQuery
from steth_rewards.rewards import RewardsService


def _block_value(value: Optional[str]) -> Union[int, str, None]:
    if value is None:
        return None
    return int(value) if value.isdigit() else value


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="stETH rewards history")
    parser.add_argument("--network", default="mainnet")
    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH)
    parser.add_argument("--account", required=True)
    parser.add_argument("--source", choices=["chain", "subgraph"], default="chain")
    parser.add_argument("--from-block", default=None, help="Block number or tag")
    parser.add_argument("--from-timestamp", type=int, default=None)
    parser.add_argument("--to-block", default=None, help="Block number or tag (default latest)")
    parser.add_argument("--to-timestamp", type=int, default=None)
    parser.add_argument("--back-blocks", type=int, default=None)
    parser.add_argument("--back-days", type=int, default=None)
    parser.add_argument("--back-seconds", type=int, default=None)
    parser.add_argument("--step", type=int, default=None)
    parser.add_argument("--include-zero-rebases", action="store_true")
    parser.add_argument("--include-only-rebases", action="store_true", help="Keep transfer records too")
    parser.add_argument("--timeout", type=float, default=None)
    parser.add_argument("--output", default=None, help="Write ledger to .csv or .json")
    return parser.parse_args(argv)


def build_query(args: argparse.Namespace) -> RewardQuery:
    from_arg = None
    if args.from_block is not None or args.from_timestamp is not None:
        from_arg = BlockArgument(block=_block_value(args.from_block), timestamp=args.from_timestamp)
    to_arg = None
    if args.to_block is not None or args.to_timestamp is not None:
        to_arg = BlockArgument(block=_block_value(args.to_block), timestamp=args.to_timestamp)
    back = None
    if from_arg is None:
        back = BackArgument(blocks=args.back_blocks, days=args.back_days, seconds=args.back_seconds)
    return RewardQuery(
        account=args.account,
        from_=from_arg,
        to=to_arg,
        back=back,
        step=args.step,
        include_zero_rebases=args.include_zero_rebases,
        include_only_rebases=args.include_only_rebases,
    )


def main(argv=None) -> int:
    args = parse_args(argv)
    network = load_network(args.network, args.config)
    service = RewardsService.from_network(network, timeout=args.timeout)
    query = build_query(args)

    print(f"🛠️ Starting rewards scan on {network.name} via {args.source}...")
    operation = service.get_rewards_from_chain if args.source == "chain" else service.get_rewards_from_subgraph
    result = call_with_envelope("Rewards", operation, query)
    if not result["ok"]:
        return 2

    ledger = result["data"]
    print(json.dumps(ledger_summary(ledger), indent=2))
    if args.output:
        if args.output.endswith(".csv"):
            write_csv(ledger, args.output)
        else:
            write_json(ledger, args.output)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
