from typing import Any, Dict, List, Optional, Tuple, Union

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_utils import keccak, to_checksum_address

from steth_rewards.config import NetworkConfig
from steth_rewards.models import TokenRebased, TransferShares
from steth_rewards.utils.cache import ReadThroughCache
from steth_rewards.utils.http import HttpClient


def _topic0(signature: str) -> str:
    return f"0x{keccak(text=signature).hex()}"


def _selector(signature: str) -> str:
    return f"0x{keccak(text=signature)[:4].hex()}"


EVENT_SIGS = {
    "TransferShares": _topic0("TransferShares(address,address,uint256)"),
    "TokenRebased": _topic0("TokenRebased(uint256,uint256,uint256,uint256,uint256,uint256,uint256)"),
}

SELECTORS = {
    "sharesOf": _selector("sharesOf(address)"),
    "getTotalPooledEther": _selector("getTotalPooledEther()"),
    "getTotalShares": _selector("getTotalShares()"),
    "lido": _selector("lido()"),
    "withdrawalQueue": _selector("withdrawalQueue()"),
}

TOKEN_REBASED_DATA = ["uint256"] * 6

BlockId = Union[int, str]


def _hex_to_int(value: Any) -> int:
    if isinstance(value, int):
        return value
    return int(value, 16) if str(value).startswith("0x") else int(value)


def _block_param(block: BlockId) -> str:
    return hex(block) if isinstance(block, int) else block


def address_topic(address: str) -> str:
    return "0x" + "0" * 24 + address.lower()[2:]


def _topic_to_address(topic: str) -> str:
    return "0x" + topic[-40:].lower()


def _data_bytes(data_hex: str) -> bytes:
    return bytes.fromhex(data_hex[2:] if data_hex.startswith("0x") else data_hex)


def decode_transfer_shares(log: Dict[str, Any]) -> TransferShares:
    topics = log["topics"]
    (shares_value,) = abi_decode(["uint256"], _data_bytes(log.get("data", "0x")))
    return TransferShares(
        from_address=_topic_to_address(topics[1]),
        to_address=_topic_to_address(topics[2]),
        shares_value=shares_value,
        block_number=_hex_to_int(log["blockNumber"]),
        log_index=_hex_to_int(log["logIndex"]),
        tx_hash=log.get("transactionHash", "").lower(),
    )


def decode_token_rebased(log: Dict[str, Any]) -> TokenRebased:
    topics = log["topics"]
    (
        time_elapsed,
        pre_total_shares,
        pre_total_ether,
        post_total_shares,
        post_total_ether,
        shares_minted_as_fees,
    ) = abi_decode(TOKEN_REBASED_DATA, _data_bytes(log.get("data", "0x")))
    return TokenRebased(
        post_total_ether=post_total_ether,
        post_total_shares=post_total_shares,
        block_number=_hex_to_int(log["blockNumber"]),
        log_index=_hex_to_int(log["logIndex"]),
        tx_hash=log.get("transactionHash", "").lower(),
        report_timestamp=_hex_to_int(topics[1]) if len(topics) > 1 else 0,
        time_elapsed=time_elapsed,
        pre_total_shares=pre_total_shares,
        pre_total_ether=pre_total_ether,
        shares_minted_as_fees=shares_minted_as_fees,
    )


class RpcReader:
    """Historical state and event reads against a JSON-RPC node for one stETH contract."""

    def __init__(self, client: HttpClient, steth_address: str, cache: Optional[ReadThroughCache] = None) -> None:
        self.client = client
        self.steth_address = steth_address.lower()
        self.cache = cache

    def _call(self, data: str, block: BlockId, to: Optional[str] = None) -> bytes:
        result = self.client.rpc("eth_call", [{"to": to or self.steth_address, "data": data}, _block_param(block)])
        return _data_bytes(result or "0x")

    def _call_uint(self, data: str, block: BlockId) -> int:
        (value,) = abi_decode(["uint256"], self._call(data, block))
        return value

    # Historical state

    def read_share_balance(self, account: str, block: BlockId) -> int:
        args = abi_encode(["address"], [to_checksum_address(account)]).hex()
        return self._call_uint(SELECTORS["sharesOf"] + args, block)

    def read_total_supply_pair(self, block: BlockId) -> tuple:
        total_ether = self._call_uint(SELECTORS["getTotalPooledEther"], block)
        total_shares = self._call_uint(SELECTORS["getTotalShares"], block)
        return total_ether, total_shares

    def read_block(self, block: BlockId) -> Dict[str, Optional[int]]:
        data = self.client.rpc("eth_getBlockByNumber", [_block_param(block), False])
        if data is None:
            raise LookupError(f"Block {block} not found")
        number = data.get("number")
        return {
            "number": _hex_to_int(number) if number is not None else None,
            "timestamp": _hex_to_int(data["timestamp"]),
        }

    def latest_block_to_timestamp(self, timestamp: int) -> Dict[str, int]:
        """Highest block with block.timestamp <= timestamp (block 0 if none).

        Answers at the current head are not cached.
        """
        if self.cache is None:
            return self._search_block(timestamp)[0]
        key = ("block_at", timestamp)
        block, is_head = self.cache.get_or_load(key, lambda: self._search_block(timestamp))
        if is_head:
            self.cache.invalidate(key)
        return block

    def _search_block(self, timestamp: int) -> Tuple[Dict[str, int], bool]:
        latest = self.read_block("latest")
        if latest["timestamp"] <= timestamp:
            return latest, True
        lo, hi = 0, latest["number"]
        best = None
        while lo <= hi:
            mid = (lo + hi) // 2
            block = self.read_block(mid)
            if block["timestamp"] <= timestamp:
                best = block
                lo = mid + 1
            else:
                hi = mid - 1
        return (best if best is not None else self.read_block(0)), False

    # Events

    def _get_logs(self, topics: List[Optional[str]], from_block: int, to_block: int) -> List[Dict[str, Any]]:
        params = {
            "address": self.steth_address,
            "fromBlock": hex(from_block),
            "toBlock": hex(to_block),
            "topics": topics,
        }
        return self.client.rpc("eth_getLogs", [params]) or []

    def query_transfers(self, direction: str, account: str, from_block: int, to_block: int) -> List[TransferShares]:
        if direction == "from":
            topics = [EVENT_SIGS["TransferShares"], address_topic(account)]
        elif direction == "to":
            topics = [EVENT_SIGS["TransferShares"], None, address_topic(account)]
        else:
            raise ValueError(f"direction must be 'from' or 'to', got {direction!r}")
        return [decode_transfer_shares(log) for log in self._get_logs(topics, from_block, to_block)]

    def query_rebases(self, from_block: int, to_block: int) -> List[TokenRebased]:
        logs = self._get_logs([EVENT_SIGS["TokenRebased"]], from_block, to_block)
        return [decode_token_rebased(log) for log in logs]


class ContractResolver:
    """Resolves stETH and withdrawal queue addresses through the Lido locator.

    Addresses set in the network config win over the locator. Lookups are cached
    per chain id.
    """

    def __init__(self, client: HttpClient, network: NetworkConfig, cache: Optional[ReadThroughCache] = None) -> None:
        self.client = client
        self.network = network
        self.cache = cache or ReadThroughCache()

    def _locator_address(self, name: str) -> str:
        result = self.client.rpc(
            "eth_call", [{"to": self.network.locator, "data": SELECTORS[name]}, "latest"]
        )
        (address,) = abi_decode(["address"], _data_bytes(result or "0x"))
        return address.lower()

    def _resolve(self, name: str, override: Optional[str]) -> str:
        if override:
            return override.lower()
        return self.cache.get_or_load(
            (self.network.chain_id, name), lambda: self._locator_address(name)
        )

    def steth(self) -> str:
        return self._resolve("lido", self.network.steth)

    def withdrawal_queue(self) -> str:
        return self._resolve("withdrawalQueue", self.network.withdrawal_queue)
