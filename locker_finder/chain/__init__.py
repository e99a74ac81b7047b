"""Chain access layer."""

from locker_finder.chain.base_client import BaseChainClient
from locker_finder.chain.rpc_client import JsonRpcClient

__all__ = ["BaseChainClient", "JsonRpcClient"]
