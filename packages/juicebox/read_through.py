"""Read-through gateway: revert-tolerant contract view calls.

Every call returns a :class:`CallResult` holding either a decoded value
or a ``reverted`` flag. A revert, an RPC error, a transport failure after
the client's bounded retries, and return data that does not decode all
look the same to callers: the call produced no value. Callers decide
whether that is recoverable.

Calls are evaluated at the block of the event being processed so a replay
reads the same contract state every time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Generic, Optional, Protocol, Sequence, TypeVar, Union

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_utils import function_signature_to_4byte_selector

from .normalization import normalize_address, normalize_hex
from .rpc import JsonRpcClient

logger = logging.getLogger(__name__)

T = TypeVar("T")

BlockRef = Union[int, str]


@dataclass(frozen=True)
class CallResult(Generic[T]):
    """Value of a view call, or the reverted signal."""

    value: Optional[T] = None
    reverted: bool = False

    @classmethod
    def ok(cls, value: T) -> "CallResult[T]":
        return cls(value=value, reverted=False)

    @classmethod
    def revert(cls) -> "CallResult[T]":
        return cls(value=None, reverted=True)


class ContractReader(Protocol):
    """Executes a view call by (address, function signature, arguments)."""

    def try_call(
        self,
        address: str,
        signature: str,
        args: Sequence[Any] = (),
        output_types: Sequence[str] = (),
        block: BlockRef = "latest",
    ) -> CallResult:
        ...


def split_abi_types(type_list: str) -> list[str]:
    """Split a comma-separated ABI type list, respecting tuple parentheses.

    >>> split_abi_types("address,(uint256,bool)[],bool")
    ['address', '(uint256,bool)[]', 'bool']
    """
    types: list[str] = []
    depth = 0
    current = ""
    for ch in type_list:
        if ch == "," and depth == 0:
            types.append(current.strip())
            current = ""
            continue
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        current += ch
    if current.strip():
        types.append(current.strip())
    return types


def signature_arg_types(signature: str) -> list[str]:
    """Argument types of ``name(type,...)``."""
    open_idx = signature.index("(")
    return split_abi_types(signature[open_idx + 1:-1])


class RpcContractReader:
    """ContractReader backed by JSON-RPC ``eth_call``."""

    def __init__(self, client: JsonRpcClient):
        self.client = client

    def try_call(
        self,
        address: str,
        signature: str,
        args: Sequence[Any] = (),
        output_types: Sequence[str] = (),
        block: BlockRef = "latest",
    ) -> CallResult:
        selector = function_signature_to_4byte_selector(signature)
        arg_types = signature_arg_types(signature)
        calldata = "0x" + (selector + encode(arg_types, list(args))).hex()

        result_hex = self.client.eth_call(normalize_address(address), calldata, block)
        if result_hex is None:
            return CallResult.revert()

        try:
            decoded = decode(list(output_types), bytes.fromhex(result_hex[2:]))
        except (DecodingError, ValueError) as e:
            logger.warning(
                "Failed to decode %s result from %s: %s", signature, address, e
            )
            return CallResult.revert()

        if len(output_types) == 1:
            return CallResult.ok(decoded[0])
        return CallResult.ok(tuple(decoded))


# ---------------------------------------------------------------------------
# Tiered 721 delegate reads
# ---------------------------------------------------------------------------

SIG_NAME = "name()"
SIG_SYMBOL = "symbol()"
SIG_MAX_TIER_ID_OF = "maxTierIdOf(address)"
SIG_TIERS_OF = "tiersOf(address,uint256[],bool,uint256,uint256)"

# JB721Tier as returned by JBTiered721DelegateStore v3.2.
JB721_TIER_3_2 = (
    "(uint256,uint256,uint256,uint256,uint256,uint256,address,bytes32,"
    "uint256,bool,bool,string)"
)


@dataclass(frozen=True)
class TierData:
    """One tier as read from the delegate store."""

    tier_id: int
    price: int
    remaining_quantity: int
    initial_quantity: int
    voting_units: int
    reserved_rate: int
    reserved_token_beneficiary: str
    encoded_ipfs_uri: str
    category: int
    allow_manual_mint: bool
    transfers_pausable: bool
    resolved_uri: str

    @classmethod
    def from_tuple(cls, row: Sequence[Any]) -> "TierData":
        return cls(
            tier_id=int(row[0]),
            price=int(row[1]),
            remaining_quantity=int(row[2]),
            initial_quantity=int(row[3]),
            voting_units=int(row[4]),
            reserved_rate=int(row[5]),
            reserved_token_beneficiary=normalize_address(row[6]),
            encoded_ipfs_uri=normalize_hex(row[7]),
            category=int(row[8]),
            allow_manual_mint=bool(row[9]),
            transfers_pausable=bool(row[10]),
            resolved_uri=str(row[11]),
        )


class Tiered721Reader:
    """Typed reads against a tiered 721 delegate and its store."""

    def __init__(self, reader: ContractReader):
        self.reader = reader

    def name(self, delegate: str, block: BlockRef = "latest") -> CallResult[str]:
        return self.reader.try_call(delegate, SIG_NAME, (), ("string",), block)

    def symbol(self, delegate: str, block: BlockRef = "latest") -> CallResult[str]:
        return self.reader.try_call(delegate, SIG_SYMBOL, (), ("string",), block)

    def max_tier_id_of(
        self, store: str, delegate: str, block: BlockRef = "latest"
    ) -> CallResult[int]:
        result = self.reader.try_call(
            store, SIG_MAX_TIER_ID_OF, (normalize_address(delegate),), ("uint256",), block
        )
        if result.reverted:
            return result
        return CallResult.ok(int(result.value))

    def tiers_of(
        self,
        store: str,
        delegate: str,
        size: int,
        block: BlockRef = "latest",
    ) -> CallResult[list[TierData]]:
        """All tiers (every category, resolved URIs) from tier id 1."""
        result = self.reader.try_call(
            store,
            SIG_TIERS_OF,
            (normalize_address(delegate), [], True, 1, int(size)),
            (f"{JB721_TIER_3_2}[]",),
            block,
        )
        if result.reverted:
            return result
        return CallResult.ok([TierData.from_tuple(row) for row in result.value])
