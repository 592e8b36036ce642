"""namada-flow - Namada wallet and transfer workflow.

Alias resolution, public key reveal and transfer submission on top of an
external SDK bridge and a CometBFT node.
"""

__version__ = "0.1.0"

from .config import WorkflowConfig
from .wallet import Wallet
from .workflow import TransferWorkflow, ensure_revealed, resolve, submit_transfer

__all__ = [
    # Main wallet class
    "Wallet",
    "WorkflowConfig",
    # Workflow steps
    "TransferWorkflow",
    "resolve",
    "ensure_revealed",
    "submit_transfer",
]
