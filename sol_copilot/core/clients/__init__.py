from sol_copilot.core.clients.AdvisorClient import ADVISOR_CLIENT, AdvisorClient
from sol_copilot.core.clients.DexClient import DEX_CLIENT, DexClient

__all__ = [
    "ADVISOR_CLIENT",
    "AdvisorClient",
    "DEX_CLIENT",
    "DexClient",
]
