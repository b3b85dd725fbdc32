from typing import Callable, Iterator, List, Tuple, TypeVar

T = TypeVar("T")


def block_windows(step: int, from_block: int, to_block: int) -> Iterator[Tuple[int, int]]:
    """Inclusive [start, end] windows of at most `step` blocks, ascending."""
    for start in range(from_block, to_block + 1, step):
        yield start, min(start + step - 1, to_block)


def request_with_block_step(
    step: int,
    from_block: int,
    to_block: int,
    request: Callable[[int, int], List[T]],
) -> List[T]:
    results: List[T] = []
    for start, end in block_windows(step, from_block, to_block):
        results.extend(request(start, end))
    return results
