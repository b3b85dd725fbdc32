import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


ENV_PATTERN = re.compile(r"\$\{([A-Z0-9_]+)\}")

DEFAULT_CONFIG_PATH = "config/networks.yaml"


def _expand_env(value: Any) -> Any:
    if isinstance(value, str):
        def replace(match: re.Match) -> str:
            key = match.group(1)
            return os.environ.get(key, "")

        return ENV_PATTERN.sub(replace, value)
    if isinstance(value, dict):
        return {k: _expand_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_expand_env(v) for v in value]
    return value


def load_yaml(path: str) -> Dict[str, Any]:
    data = yaml.safe_load(Path(path).read_text())
    return _expand_env(data)


@dataclass
class NetworkConfig:
    name: str
    chain_id: int
    rpc_url: str
    subgraph_url: str
    earliest_rebase_block: int
    locator: str
    steth: Optional[str] = None
    withdrawal_queue: Optional[str] = None
    rate_limit_per_second: float = 5.0
    default_step: int = 1000


def load_network(name: str, path: str = DEFAULT_CONFIG_PATH) -> NetworkConfig:
    networks = load_yaml(path)
    if name not in networks:
        raise KeyError(f"Unknown network {name!r} in {path}")
    cfg = networks[name]
    return NetworkConfig(
        name=name,
        chain_id=int(cfg["chain_id"]),
        rpc_url=cfg.get("rpc_url", ""),
        subgraph_url=cfg.get("subgraph_url", ""),
        earliest_rebase_block=int(cfg["earliest_rebase_block"]),
        locator=cfg["locator"],
        # empty strings come from unset ${VARS}
        steth=cfg.get("steth") or None,
        withdrawal_queue=cfg.get("withdrawal_queue") or None,
        rate_limit_per_second=float(cfg.get("rate_limit_per_second", 5.0)),
        default_step=int(cfg.get("default_step", 1000)),
    )
