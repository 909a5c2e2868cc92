# presence_service/shared/__init__.py
"""
Общие модели, используемые ядром и транспортным слоем.
"""
