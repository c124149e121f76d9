# Re-export from local modules
from .builder import InstanceBuilder, create_instance
from .cancellation import CancellationToken
from .config import Settings
from .controller import SessionController
from .resolver import resolve
from .sdk import SdkLifecycle
from .types import RelayerPhase, ResolutionResult, SessionStatus

__all__ = [
    "CancellationToken",
    "InstanceBuilder",
    "RelayerPhase",
    "ResolutionResult",
    "SdkLifecycle",
    "SessionController",
    "SessionStatus",
    "Settings",
    "create_instance",
    "resolve",
]
