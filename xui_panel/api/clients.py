"""
Операции с клиентами inbound панели 3x-ui
"""
import json
import logging
from datetime import datetime
from typing import Optional, Dict, Any, List
from urllib.parse import quote

from xui_panel.api.base_client import XUIClient, ensure_success
from xui_panel.api.client_factory import client_key
from xui_panel.api.inbounds import INBOUNDS_API
from xui_panel.errors import APIError, ValidationError, add_context
from xui_panel.models import Client, ClientTraffic, Inbound
from xui_panel.utils.helpers import traffic_to_bytes
from xui_panel.utils.validators import require_inbound_id, require_non_empty

logger = logging.getLogger(__name__)


def _encode(value: str) -> str:
    return quote(str(value), safe='')


def validate_client_data(client: Client):
    """Проверить клиента перед добавлением в inbound"""
    if not client.id or not str(client.id).strip():
        raise ValidationError('ID клиента обязателен', field='id', value=client.id)

    if not isinstance(client.enable, bool):
        raise ValidationError('enable должен быть bool', field='enable', value=client.enable)

    for field_name in ('limit_ip', 'total_gb', 'expiry_time'):
        value = getattr(client, field_name)
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ValidationError(
                f'{field_name} должно быть неотрицательным целым',
                field=field_name,
                value=value
            )


class ClientManager:
    """
    Операции над отдельными клиентами inbound

    Ключ клиента (client key) зависит от протокола inbound:
    id для vmess/vless, password для trojan, email для shadowsocks.
    """

    def __init__(self, client: XUIClient):
        self.client = client

    async def _fetch_inbound(self, inbound_id: int) -> Inbound:
        result = await self.client.get(f'{INBOUNDS_API}/get/{inbound_id}')
        return Inbound.from_dict(ensure_success(result, 'Inbound не найден', require_obj=True))

    async def get_client_traffic(self, email: str) -> ClientTraffic:
        """Статистика трафика клиента по email"""
        require_non_empty(email, 'email')

        try:
            result = await self.client.get(f'{INBOUNDS_API}/getClientTraffics/{_encode(email)}')
            obj = ensure_success(result, 'Трафик клиента не найден', require_obj=True)
        except Exception as e:
            raise add_context(
                e,
                f'Не удалось получить трафик клиента {email}',
                operation='getClientTraffic',
                email=email
            )

        return ClientTraffic.from_dict(obj)

    async def get_client_traffic_by_id(self, client_id: str) -> List[ClientTraffic]:
        """Статистика трафика по id клиента (панель возвращает список)"""
        require_non_empty(client_id, 'client_id')

        try:
            result = await self.client.get(f'{INBOUNDS_API}/getClientTrafficsById/{_encode(client_id)}')
            obj = ensure_success(result, 'Трафик клиента не найден', require_obj=True)
        except Exception as e:
            raise add_context(
                e,
                f'Не удалось получить трафик клиента {client_id}',
                operation='getClientTrafficById',
                client_id=client_id
            )

        items = obj if isinstance(obj, list) else [obj]
        return [ClientTraffic.from_dict(item) for item in items if isinstance(item, dict)]

    async def add_client(self, inbound_id: int, client: Client) -> bool:
        """
        Добавить клиента в inbound

        В settings передается только новый клиент, остальные клиенты
        inbound панель не трогает.
        """
        require_inbound_id(inbound_id)
        validate_client_data(client)

        try:
            result = await self.client.post(
                f'{INBOUNDS_API}/addClient',
                {
                    'id': inbound_id,
                    'settings': json.dumps({"clients": [client.to_dict()]})
                }
            )
            ensure_success(result, 'Не удалось добавить клиента')
        except Exception as e:
            raise add_context(
                e,
                'Не удалось добавить клиента',
                operation='addClient',
                inbound_id=inbound_id,
                client_email=client.email
            )

        logger.info(f"Client {client.email} added to inbound {inbound_id}")
        return True

    async def delete_client(self, inbound_id: int, key: str) -> bool:
        """
        Удалить клиента из inbound

        :param key: ключ клиента (id / password / email в зависимости от протокола)
        """
        require_inbound_id(inbound_id)
        require_non_empty(key, 'client_key')

        try:
            result = await self.client.post(f'{INBOUNDS_API}/{inbound_id}/delClient/{_encode(key)}')
            ensure_success(result, 'Не удалось удалить клиента')
        except Exception as e:
            raise add_context(
                e,
                'Не удалось удалить клиента',
                operation='deleteClient',
                inbound_id=inbound_id,
                client_key=key
            )

        logger.info(f"Client {key} deleted from inbound {inbound_id}")
        return True

    async def update_client(self, inbound_id: int, key: str, changes: Dict[str, Any]) -> bool:
        """
        Обновить поля клиента

        :param changes: поля в формате панели (enable, totalGB, expiryTime, ...)
        """
        require_inbound_id(inbound_id)
        require_non_empty(key, 'client_key')

        try:
            inbound = await self._fetch_inbound(inbound_id)

            current = None
            for existing in inbound.get_clients():
                if client_key(existing, inbound.protocol) == key:
                    current = existing
                    break

            if current is None:
                raise APIError('Клиент не найден', status_code=404)

            updated = {**current.to_dict(), **changes}
            result = await self.client.post(
                f'{INBOUNDS_API}/updateClient/{_encode(key)}',
                {
                    'id': inbound_id,
                    'settings': json.dumps({"clients": [updated]})
                }
            )
            ensure_success(result, 'Не удалось обновить клиента')
        except Exception as e:
            raise add_context(
                e,
                'Не удалось обновить клиента',
                operation='updateClient',
                inbound_id=inbound_id,
                client_key=key
            )

        logger.info(f"Client {key} updated in inbound {inbound_id}")
        return True

    async def reset_client_traffic(self, inbound_id: int, email: str) -> bool:
        """Сбросить трафик клиента"""
        require_inbound_id(inbound_id)
        require_non_empty(email, 'email')

        try:
            result = await self.client.post(
                f'{INBOUNDS_API}/{inbound_id}/resetClientTraffic/{_encode(email)}'
            )
            ensure_success(result, 'Не удалось сбросить трафик клиента')
        except Exception as e:
            raise add_context(
                e,
                'Не удалось сбросить трафик клиента',
                operation='resetClientTraffic',
                inbound_id=inbound_id,
                email=email
            )

        logger.info(f"Traffic reset for client {email} in inbound {inbound_id}")
        return True

    async def get_client_ips(self, email: str) -> List[str]:
        """IP адреса, с которых подключался клиент"""
        require_non_empty(email, 'email')

        try:
            result = await self.client.post(f'{INBOUNDS_API}/clientIps/{_encode(email)}')
            obj = ensure_success(result, 'Не удалось получить IP клиента')
        except Exception as e:
            raise add_context(
                e,
                f'Не удалось получить IP клиента {email}',
                operation='getClientIps',
                email=email
            )

        if isinstance(obj, list):
            return obj
        if isinstance(obj, dict):
            return obj.get('ips') or []
        # панель отвечает строкой "No IP Record", если IP нет
        return []

    async def clear_client_ips(self, email: str) -> bool:
        """Очистить IP адреса клиента"""
        require_non_empty(email, 'email')

        try:
            result = await self.client.post(f'{INBOUNDS_API}/clearClientIps/{_encode(email)}')
            ensure_success(result, 'Не удалось очистить IP клиента')
        except Exception as e:
            raise add_context(
                e,
                f'Не удалось очистить IP клиента {email}',
                operation='clearClientIps',
                email=email
            )

        logger.info(f"IPs cleared for client {email}")
        return True

    async def toggle_client_enabled(self, inbound_id: int, key: str, enabled: bool) -> bool:
        """Включить или выключить клиента"""
        return await self.update_client(inbound_id, key, {'enable': enabled})

    async def set_client_traffic_limit(self, inbound_id: int, key: str, limit_gb: float) -> bool:
        """Установить лимит трафика в GB (0 - без ограничения)"""
        if isinstance(limit_gb, bool) or not isinstance(limit_gb, (int, float)) or limit_gb < 0:
            raise ValidationError('Лимит трафика должен быть неотрицательным', field='limit_gb', value=limit_gb)

        return await self.update_client(inbound_id, key, {'totalGB': traffic_to_bytes(limit_gb, 'GB')})

    async def set_client_expiry(self, inbound_id: int, key: str, expiry: datetime) -> bool:
        """Установить дату окончания действия клиента"""
        return await self.update_client(inbound_id, key, {'expiryTime': int(expiry.timestamp() * 1000)})

    async def get_clients_from_inbound(self, inbound_id: int) -> List[Client]:
        """Все клиенты inbound"""
        require_inbound_id(inbound_id)

        try:
            inbound = await self._fetch_inbound(inbound_id)
            return inbound.get_clients()
        except Exception as e:
            raise add_context(
                e,
                f'Не удалось получить клиентов inbound {inbound_id}',
                operation='getClientsFromInbound',
                inbound_id=inbound_id
            )

    async def find_client_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        """
        Найти клиента по email во всех inbound

        :return: {'client', 'inbound_id', 'inbound_remark'} или None
        """
        require_non_empty(email, 'email')

        try:
            result = await self.client.get(f'{INBOUNDS_API}/list')
            items = ensure_success(result, 'Не удалось получить список inbound', require_obj=True)
        except Exception as e:
            raise add_context(
                e,
                f'Не удалось найти клиента {email}',
                operation='findClientByEmail',
                email=email
            )

        for item in items:
            if not isinstance(item, dict):
                continue
            try:
                inbound = Inbound.from_dict(item)
                clients = inbound.get_clients()
            except (TypeError, ValueError) as e:
                logger.warning(f"Failed to parse inbound {item.get('id')}: {e}")
                continue

            for client in clients:
                if client.email == email:
                    return {
                        'client': client,
                        'inbound_id': inbound.id,
                        'inbound_remark': inbound.remark,
                    }

        return None


__all__ = [
    'ClientManager',
    'validate_client_data',
]
