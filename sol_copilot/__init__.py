__version__ = "0.1.0"

from sol_copilot.core import (
    BaseAdapter,
    PortfolioSnapshot,
    SnapshotBuilder,
    SwapOutcome,
    TokenDescriptor,
)

__all__ = [
    "__version__",
    "BaseAdapter",
    "PortfolioSnapshot",
    "SnapshotBuilder",
    "SwapOutcome",
    "TokenDescriptor",
]
