"""Fee detection collaborators."""

from flywheel.sources.factory import FeeSourceKind, build_fee_source
from flywheel.sources.mock import MockFeeSource
from flywheel.sources.wallet import SolanaRpcClient, WalletWatcherFeeSource

__all__ = [
    "FeeSourceKind",
    "MockFeeSource",
    "SolanaRpcClient",
    "WalletWatcherFeeSource",
    "build_fee_source",
]
