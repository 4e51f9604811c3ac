# Schemas package
from .wallet_pass import PassColorsPayload, WalletPassErrorResponse, WalletPassRequest

__all__ = [
    "PassColorsPayload", "WalletPassErrorResponse", "WalletPassRequest",
]
