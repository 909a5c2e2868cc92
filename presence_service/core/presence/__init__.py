# presence_service/core/presence/__init__.py
"""
Ядро присутствия: общее состояние, поиск поблизости, жизненный цикл соединений.
"""

from presence_service.core.presence.state import PresenceState
from presence_service.core.presence.engine import ProximityEngine
from presence_service.core.presence.lifecycle import BindResult, ConnectionLifecycleManager

__all__ = [
    "PresenceState",
    "ProximityEngine",
    "BindResult",
    "ConnectionLifecycleManager",
]
