import time
from dataclasses import dataclass
from typing import Callable, Optional

from steth_rewards.errors import invariant_argument
from steth_rewards.models import BackArgument, BlockArgument, RewardQuery

DEFAULT_STEP = 1000


@dataclass
class ResolvedRange:
    from_block: int
    to_block: int
    step: int
    include_zero_rebases: bool
    include_only_rebases: bool


class RangeResolver:
    """Turns to / from / back arguments into concrete block numbers.

    `reader` needs read_block(tag_or_number) and latest_block_to_timestamp(ts).
    """

    def __init__(self, reader, clock: Callable[[], float] = time.time, default_step: int = DEFAULT_STEP) -> None:
        self.reader = reader
        self.clock = clock
        self.default_step = default_step

    def resolve(self, query: RewardQuery) -> ResolvedRange:
        step = self.default_step if query.step is None else query.step
        invariant_argument(isinstance(step, int) and step > 0, "steps must be a positive integer")
        if query.from_ is None:
            back = query.back or BackArgument()
            invariant_argument(
                bool(back.blocks or back.days or back.seconds),
                "must have at least something in back argument",
            )

        to_block = self.to_block_number(query.to or BlockArgument(block="latest"))
        if query.from_ is not None:
            from_block = self.to_block_number(query.from_)
        else:
            from_block = self.to_back_block(query.back, to_block)

        invariant_argument(to_block >= from_block, "toBlock is lower than fromBlock")
        return ResolvedRange(
            from_block=from_block,
            to_block=to_block,
            step=step,
            include_zero_rebases=query.include_zero_rebases,
            include_only_rebases=query.include_only_rebases,
        )

    def to_block_number(self, arg: BlockArgument) -> int:
        if arg.timestamp:
            return self.reader.latest_block_to_timestamp(arg.timestamp)["number"]
        block = arg.block if arg.block is not None else "latest"
        if isinstance(block, int):
            invariant_argument(block >= 0, "block must not be negative")
            return block
        number = self.reader.read_block(block)["number"]
        invariant_argument(number is not None, "block must not be pending")
        return number

    def to_back_block(self, arg: Optional[BackArgument], start: int) -> int:
        arg = arg or BackArgument()
        if arg.blocks:
            end = start - arg.blocks
            invariant_argument(end >= 0, "Too many blocks back")
            return end
        if arg.days:
            target = int(self.clock() - arg.days * 86400)
            return self.reader.latest_block_to_timestamp(target)["number"]
        if arg.seconds:
            target = int(self.clock()) - arg.seconds
            return self.reader.latest_block_to_timestamp(target)["number"]
        invariant_argument(False, "must have at least something in back argument")
