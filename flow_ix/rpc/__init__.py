"""
Access-node clients.

    from flow_ix.rpc import NodeClient

    async with NodeClient(Config(node="http://127.0.0.1:8888")) as node:
        block_id = await node.get_latest_block_id()
"""

from .http import NodeClient

__all__ = ["NodeClient"]
