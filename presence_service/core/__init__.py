# presence_service/core/__init__.py
"""
Доменный слой: состояние присутствия, поиск поблизости,
жизненный цикл соединений и учётные записи.
"""
