# presence_service/services/users_service/__init__.py
"""
REST маршруты регистрации и входа.
"""
