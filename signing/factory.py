from __future__ import annotations

from typing import Optional

from app.core.settings import Settings, SignerType
from transactions.paymaster import approval_based_paymaster, general_paymaster
from transactions.types import PaymasterParams

from .account_abstraction import AccountAbstractionSigner
from .base import Signer
from .private_key import PrivateKeySigner


def paymaster_from_settings(settings: Settings) -> Optional[PaymasterParams]:
    if not settings.PAYMASTER_ADDRESS:
        return None
    if settings.PAYMASTER_TOKEN:
        return approval_based_paymaster(
            settings.PAYMASTER_ADDRESS, settings.PAYMASTER_TOKEN, settings.PAYMASTER_MIN_ALLOWANCE
        )
    return general_paymaster(settings.PAYMASTER_ADDRESS)


def get_signer(settings: Settings) -> Signer:
    """
    Select signer based on SIGNER_TYPE.

    Supported:
    - private_key (default): uses PRIVATE_KEY
    - account_abstraction: AA_ACCOUNT_ADDRESS signed by PRIVATE_KEY plus any
      AA_EXTRA_PRIVATE_KEYS (multi-sig), with the optional paymaster attached
    """
    if not settings.PRIVATE_KEY:
        raise ValueError("PRIVATE_KEY environment variable not set")
    if settings.SIGNER_TYPE is SignerType.PRIVATE_KEY:
        return PrivateKeySigner(settings.PRIVATE_KEY)
    if settings.SIGNER_TYPE is SignerType.ACCOUNT_ABSTRACTION:
        return AccountAbstractionSigner(
            settings.AA_ACCOUNT_ADDRESS or "",
            [settings.PRIVATE_KEY, *settings.AA_EXTRA_PRIVATE_KEYS],
            paymaster=paymaster_from_settings(settings),
        )
    raise ValueError(f"Unsupported SIGNER_TYPE: {settings.SIGNER_TYPE}")
