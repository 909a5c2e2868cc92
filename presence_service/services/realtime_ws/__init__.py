# presence_service/services/realtime_ws/__init__.py
"""
Realtime WebSocket шлюз.

Обеспечивает:
- WebSocket соединения клиентов
- Приём геолокации и поиск соседей
- Рассылку сообщений чата всем подключённым
"""
