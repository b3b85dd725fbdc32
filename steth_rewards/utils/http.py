import random
import threading
import time
from typing import Any, Dict, List, Optional

import requests


class RpcError(RuntimeError):
    def __init__(self, method: str, error: Dict[str, Any]) -> None:
        super().__init__(f"{method} failed: {error.get('message', error)}")
        self.method = method
        self.error = error


class SubgraphError(RuntimeError):
    def __init__(self, errors: List[Any]) -> None:
        super().__init__(f"Subgraph query failed: {errors}")
        self.errors = errors


class HttpClient:
    def __init__(
        self,
        base_url: str,
        rate_limit_per_second: float = 5.0,
        max_retries: int = 1,
        base_delay: float = 0.5,
        max_delay: float = 20.0,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.rate_limit_per_second = rate_limit_per_second
        self.max_retries = max(max_retries, 1)
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.timeout = timeout
        self._last_request_at = 0.0
        self._lock = threading.Lock()
        self._request_id = 0
        self.session = session or requests.Session()

    def _sleep_for_rate_limit(self) -> None:
        min_interval = 1.0 / max(self.rate_limit_per_second, 0.1)
        with self._lock:
            elapsed = time.time() - self._last_request_at
            if elapsed < min_interval:
                time.sleep(min_interval - elapsed)
            self._last_request_at = time.time()

    def _request(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        url = f"{self.base_url}{endpoint}"
        for attempt in range(self.max_retries):
            self._sleep_for_rate_limit()
            try:
                response = self.session.request(method, url, timeout=self.timeout, **kwargs)
                response.raise_for_status()
                return response.json()
            except requests.RequestException:
                if attempt == self.max_retries - 1:
                    raise
                delay = min(self.base_delay * (2**attempt), self.max_delay)
                delay *= 0.5 + random.random()
                time.sleep(delay)

    def post(self, endpoint: str, payload: Dict[str, Any]) -> Any:
        return self._request(
            "POST",
            endpoint,
            json=payload,
            headers={"content-type": "application/json"},
        )

    def rpc(self, method: str, params: List[Any]) -> Any:
        with self._lock:
            self._request_id += 1
            request_id = self._request_id
        payload = {"jsonrpc": "2.0", "id": request_id, "method": method, "params": params}
        data = self.post("", payload)
        if "error" in data:
            raise RpcError(method, data["error"])
        return data.get("result")

    def graphql(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        data = self.post("", {"query": query, "variables": variables or {}})
        if data.get("errors"):
            raise SubgraphError(data["errors"])
        return data["data"]
