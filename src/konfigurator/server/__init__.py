"""Local callback listener and its completion signal.

Exports:
    :class:`CallbackListener` -- per-login HTTP listener.
    :class:`CompletionGate` -- exactly-once wake-up for the orchestrator.
    :class:`ListenerState` -- listener lifecycle states.
"""

from konfigurator.server.gate import CompletionGate
from konfigurator.server.listener import (
    CONFIRMATION_PAGE,
    CallbackListener,
    ListenerState,
    TokenExchanger,
)

__all__ = [
    "CONFIRMATION_PAGE",
    "CallbackListener",
    "CompletionGate",
    "ListenerState",
    "TokenExchanger",
]
