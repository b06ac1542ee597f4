"""
Фасад панели 3x-ui: клиент, inbound, клиенты и подписки в одном объекте
"""
import asyncio
import logging
from typing import Optional, Dict, Any, Union

from xui_panel.api.base_client import XUIClient
from xui_panel.api.clients import ClientManager
from xui_panel.api.inbounds import InboundManager
from xui_panel.api.subscriptions import SubscriptionManager
from xui_panel.config import ClientConfig
from xui_panel.models import MassClientRequest, MassOperationResult, TrafficConfig
from xui_panel.utils.helpers import UNLIMITED

logger = logging.getLogger(__name__)


def _empty_summary() -> Dict[str, Any]:
    return {
        'total': 0,
        'enabled': 0,
        'disabled': 0,
        'protocols': {},
        'total_traffic': {'up': 0, 'down': 0, 'total': 0},
    }


class XUIPanel:
    """
    Использование:
        async with create_panel(base_url='https://panel:2053/path',
                                username='admin', password='secret') as panel:
            overview = await panel.get_system_overview()
            result = await panel.create_universal_client(limit_ip=2)
    """

    def __init__(self, config: ClientConfig = None, client: XUIClient = None):
        self.client = client or XUIClient(config)
        self.inbounds = InboundManager(self.client)
        self.clients = ClientManager(self.client)
        self.subscriptions = SubscriptionManager(self.client, self.inbounds, self.clients)

    async def login(self):
        await self.client.login()

    def logout(self):
        self.client.logout()

    async def check_connection(self) -> bool:
        return await self.client.check_connection()

    def get_auth_status(self) -> Dict[str, Any]:
        return self.client.get_auth_status()

    def get_circuit_breaker_status(self) -> Dict[str, Any]:
        return self.client.get_circuit_breaker_status()

    async def get_system_overview(self) -> Dict[str, Any]:
        """
        Сводка по панели: авторизация, circuit breaker, inbound, онлайн, подписки

        Сбой отдельной части заменяется пустым значением.
        """
        summary, online, subscriptions = await asyncio.gather(
            self.inbounds.get_summary(),
            self.inbounds.get_online_users(),
            self.subscriptions.list_subscriptions(),
            return_exceptions=True
        )

        for name, value in (('inbounds', summary), ('online users', online), ('subscriptions', subscriptions)):
            if isinstance(value, Exception):
                logger.warning(f"System overview: failed to get {name}: {value}")

        return {
            'auth': self.get_auth_status(),
            'circuit_breaker': self.get_circuit_breaker_status(),
            'inbounds': _empty_summary() if isinstance(summary, Exception) else summary,
            'online_users': [] if isinstance(online, Exception) else online,
            'subscriptions': [] if isinstance(subscriptions, Exception) else subscriptions,
        }

    async def create_universal_client(
        self,
        sub_id: Optional[str] = None,
        limit_ip: Union[int, str] = UNLIMITED,
        traffic: Union[TrafficConfig, str] = UNLIMITED,
        expiry_days: Union[int, str] = UNLIMITED
    ) -> MassOperationResult:
        """Создать клиента с общим subId на всех inbound (по умолчанию без ограничений)"""
        return await self.subscriptions.mass_create(MassClientRequest(
            sub_id=sub_id,
            enable=True,
            limit_ip=limit_ip,
            traffic=traffic,
            expiry_days=expiry_days,
            reset=0
        ))

    async def close(self):
        await self.client.close()

    async def __aenter__(self) -> 'XUIPanel':
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


def create_panel(base_url: str, username: str, password: str, **options) -> XUIPanel:
    """Создать фасад панели по адресу и учетным данным"""
    return XUIPanel(ClientConfig(base_url=base_url, username=username, password=password, **options))


__all__ = ['XUIPanel', 'create_panel']
