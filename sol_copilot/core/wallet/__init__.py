from sol_copilot.core.wallet.provider import (
    LocalKeypairWallet,
    WalletProvider,
    load_keypair,
)
from sol_copilot.core.wallet.state import (
    AccountChanged,
    Connected,
    Disconnected,
    WalletState,
    reduce_wallet_state,
)

__all__ = [
    "AccountChanged",
    "Connected",
    "Disconnected",
    "LocalKeypairWallet",
    "WalletProvider",
    "WalletState",
    "load_keypair",
    "reduce_wallet_state",
]
