import time
from typing import Any, Callable, Dict

from steth_rewards.errors import RewardsError


def ok(data: Any = None, meta: Dict[str, Any] = None) -> Dict[str, Any]:
    return {"ok": True, "data": data, "meta": meta or {}}


def error(message: str, code: str = "ERROR") -> Dict[str, Any]:
    return {"ok": False, "error": code, "message": message}


def call_with_envelope(label: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Dict[str, Any]:
    """Run one public operation with start/finish logging.

    Argument, not-supported and invariant errors come back as an error envelope.
    Anything else (network failures, timeouts) is logged and re-raised so the
    caller can decide whether to retry.
    """
    print(f"[{label}] ▶️ {fn.__name__}")
    started = time.monotonic()
    try:
        result = fn(*args, **kwargs)
    except RewardsError as exc:
        print(f"[{label}] ❌ {exc.code}: {exc.message}")
        return error(exc.message, exc.code)
    except Exception as exc:
        print(f"[{label}] ⚠️ {type(exc).__name__}: {exc}")
        raise
    elapsed = time.monotonic() - started
    print(f"[{label}] ✅ {fn.__name__} finished in {elapsed:.2f}s")
    return ok(result, {"elapsed_seconds": round(elapsed, 3)})
