"""Intent handlers.

Importing this package registers every handler module with the registry in
``chatengine.handlers.base``.
"""

from chatengine.handlers import (  # noqa: F401
    account,
    appointments,
    catalog,
    checkout,
    general,
    lists,
    media,
    support,
)
from chatengine.handlers.base import (
    Handler,
    Reply,
    TurnContext,
    get_handler,
    handles,
    registered_intents,
)

__all__ = [
    "Handler",
    "Reply",
    "TurnContext",
    "get_handler",
    "handles",
    "registered_intents",
]
