"""
Umbra caller-facing API
"""

from umbra.api.methods import (
    RPCError,
    create_bundle,
    create_payment,
    derive_address,
    generate_keys,
    get_privacy_stats,
    recover_keypair,
    spend_payment,
    verify_bundle,
)

__all__ = [
    "RPCError",
    "create_bundle",
    "create_payment",
    "derive_address",
    "generate_keys",
    "get_privacy_stats",
    "recover_keypair",
    "spend_payment",
    "verify_bundle",
]
