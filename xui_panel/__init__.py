"""
xui-panel - асинхронный клиент панели 3x-ui с управлением подписками
"""
import logging

__version__ = "1.0.0"

# Errors
from .errors import (
    XUIError,
    APIError,
    AuthenticationError,
    ValidationError,
    ServiceUnavailableError,
    NetworkError,
    PanelConnectionError,
    PanelTimeoutError,
    add_context,
)

# Config
from .config import ClientConfig

# Models
from .models import (
    Protocol,
    Client,
    VmessClient,
    VlessClient,
    TrojanClient,
    ShadowsocksClient,
    Inbound,
    ClientTraffic,
    Subscription,
    SubscriptionMember,
    TrafficConfig,
    VmessOptions,
    VlessOptions,
    TrojanOptions,
    ShadowsocksOptions,
    MassClientRequest,
    MassOperationResult,
    InboundResult,
    DeletionResult,
)

# Utils
from .utils.async_utils import CircuitBreaker, RetryConfig, RetryPolicy

# API
from .api import (
    XUIClient,
    SessionManager,
    InboundManager,
    ClientManager,
    SubscriptionManager,
)
from .panel import XUIPanel, create_panel

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    '__version__',
    # Errors
    'XUIError',
    'APIError',
    'AuthenticationError',
    'ValidationError',
    'ServiceUnavailableError',
    'NetworkError',
    'PanelConnectionError',
    'PanelTimeoutError',
    'add_context',
    # Config
    'ClientConfig',
    # Models
    'Protocol',
    'Client',
    'VmessClient',
    'VlessClient',
    'TrojanClient',
    'ShadowsocksClient',
    'Inbound',
    'ClientTraffic',
    'Subscription',
    'SubscriptionMember',
    'TrafficConfig',
    'VmessOptions',
    'VlessOptions',
    'TrojanOptions',
    'ShadowsocksOptions',
    'MassClientRequest',
    'MassOperationResult',
    'InboundResult',
    'DeletionResult',
    # Resilience
    'CircuitBreaker',
    'RetryConfig',
    'RetryPolicy',
    # API
    'XUIClient',
    'SessionManager',
    'InboundManager',
    'ClientManager',
    'SubscriptionManager',
    'XUIPanel',
    'create_panel',
]
