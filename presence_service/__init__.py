# presence_service/__init__.py
"""
Presence Service: сервис присутствия и поиска пользователей поблизости.

Клиенты держат WebSocket соединение, присылают свою геолокацию
и получают список подключённых пользователей в заданном радиусе.
"""

__version__ = "1.0.0"
