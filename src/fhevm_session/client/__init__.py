from .eip1193 import Eip1193AsyncProvider
from .rpc import RpcClient, open_rpc_client

__all__ = ["Eip1193AsyncProvider", "RpcClient", "open_rpc_client"]
