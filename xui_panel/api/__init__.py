"""
API клиенты для работы с панелью 3x-ui
"""
from .base_client import PanelResponse, XUIClient
from .session import SessionManager
from .client_factory import build_client, client_key, determine_vless_flow, validate_mass_request
from .inbounds import InboundManager
from .clients import ClientManager
from .subscriptions import SubscriptionManager

__all__ = [
    # Клиент и сессия
    'PanelResponse',
    'XUIClient',
    'SessionManager',

    # Фабрика клиентов
    'build_client',
    'client_key',
    'determine_vless_flow',
    'validate_mass_request',

    # Менеджеры
    'InboundManager',
    'ClientManager',
    'SubscriptionManager',
]
