# presence_service/services/__init__.py
"""
Транспортный слой: WebSocket шлюз и REST маршруты.
"""
