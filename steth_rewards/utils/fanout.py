import time
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import Any, Callable, List, Optional


def gather(calls: List[Callable[[], Any]], timeout: Optional[float] = None) -> List[Any]:
    """Run independent calls concurrently and return their results in call order.

    The first failure (in call order) is re-raised as-is. When `timeout` expires
    the calls that have not started are cancelled and TimeoutError is raised;
    calls already on the wire are left to finish in the background and their
    results are dropped.
    """
    if not calls:
        return []
    executor = ThreadPoolExecutor(max_workers=len(calls))
    try:
        futures = [executor.submit(call) for call in calls]
        done, pending = wait(futures, timeout=timeout, return_when=FIRST_EXCEPTION)
        failed = [f for f in futures if f in done and f.exception() is not None]
        if failed:
            for future in pending:
                future.cancel()
            raise failed[0].exception()
        if pending:
            for future in pending:
                future.cancel()
            raise TimeoutError(f"{len(pending)} of {len(futures)} requests did not finish within {timeout}s")
        return [f.result() for f in futures]
    finally:
        executor.shutdown(wait=False, cancel_futures=True)


def deadline_after(timeout: Optional[float]) -> Optional[float]:
    return time.monotonic() + timeout if timeout is not None else None


def remaining(deadline: Optional[float]) -> Optional[float]:
    """Seconds left until `deadline` (never negative), or None for no deadline."""
    if deadline is None:
        return None
    return max(deadline - time.monotonic(), 0)
