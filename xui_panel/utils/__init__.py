"""
Утилиты клиента 3x-ui
"""
