from .account_abstraction import AccountAbstractionSigner
from .base import Signer
from .factory import get_signer, paymaster_from_settings
from .private_key import PrivateKeySigner

__all__ = [
    "Signer",
    "PrivateKeySigner",
    "AccountAbstractionSigner",
    "get_signer",
    "paymaster_from_settings",
]
