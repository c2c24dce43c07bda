from sol_copilot.core.adapters.BaseAdapter import BaseAdapter
from sol_copilot.core.models import PortfolioSnapshot, SwapOutcome, TokenDescriptor
from sol_copilot.core.portfolio.snapshot import SnapshotBuilder

__all__ = [
    "BaseAdapter",
    "PortfolioSnapshot",
    "SnapshotBuilder",
    "SwapOutcome",
    "TokenDescriptor",
]
