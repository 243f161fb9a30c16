from .base import L1Provider, L2Provider
from .endpoints import NetworkEndpoint, chain_id_for, endpoint_for, rpc_url_for
from .web3_provider import Web3Provider, normalize_receipt

__all__ = [
    "L1Provider",
    "L2Provider",
    "NetworkEndpoint",
    "Web3Provider",
    "chain_id_for",
    "endpoint_for",
    "normalize_receipt",
    "rpc_url_for",
]
