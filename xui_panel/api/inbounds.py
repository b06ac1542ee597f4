"""
Операции с inbound панели 3x-ui
"""
import logging
from typing import Optional, Dict, Any, List

from xui_panel.api.base_client import XUIClient, ensure_success
from xui_panel.errors import ValidationError, XUIError, add_context
from xui_panel.models import Inbound
from xui_panel.utils.validators import require_inbound_id, require_non_empty, validate_port

logger = logging.getLogger(__name__)

INBOUNDS_API = '/panel/api/inbounds'

INBOUND_PROTOCOLS = ('vmess', 'vless', 'trojan', 'shadowsocks', 'dokodemo-door', 'socks', 'http')

ALL_INBOUNDS = -1


def validate_inbound_data(data: Dict[str, Any]):
    """Проверить данные нового inbound"""
    require_non_empty(data.get('remark'), 'remark')

    if not validate_port(data.get('port')):
        raise ValidationError('Некорректный порт', field='port', value=data.get('port'))

    protocol = data.get('protocol')
    if not protocol:
        raise ValidationError('Протокол обязателен', field='protocol')
    if protocol not in INBOUND_PROTOCOLS:
        raise ValidationError(
            f'Некорректный протокол. Поддерживаются: {", ".join(INBOUND_PROTOCOLS)}',
            field='protocol',
            value=protocol
        )

    stream_settings = data.get('streamSettings')
    if not isinstance(stream_settings, dict) or not stream_settings.get('network'):
        raise ValidationError('Не задан network в streamSettings', field='streamSettings.network')


class InboundManager:
    """
    CRUD inbound и сервисные операции над ними

    Использование:
        inbounds = InboundManager(client)
        for inbound in await inbounds.get_list():
            print(inbound.remark, inbound.port)
    """

    def __init__(self, client: XUIClient):
        self.client = client

    async def get_list(self) -> List[Inbound]:
        """Получить все inbound"""
        try:
            result = await self.client.get(f'{INBOUNDS_API}/list')
            items = ensure_success(result, 'Не удалось получить список inbound', require_obj=True)
        except Exception as e:
            raise add_context(e, 'Не удалось получить список inbound', operation='getInboundList')

        inbounds = []
        for item in items:
            if not isinstance(item, dict):
                continue
            try:
                inbounds.append(Inbound.from_dict(item))
            except (TypeError, ValueError) as e:
                logger.warning(f"Skipping inbound {item.get('id')}: failed to decode: {e}")
        return inbounds

    async def get_by_id(self, inbound_id: int) -> Inbound:
        """Получить inbound по ID"""
        require_inbound_id(inbound_id, 'id')

        try:
            result = await self.client.get(f'{INBOUNDS_API}/get/{inbound_id}')
            obj = ensure_success(result, 'Inbound не найден', require_obj=True)
        except Exception as e:
            raise add_context(
                e,
                f'Не удалось получить inbound {inbound_id}',
                operation='getInboundById',
                inbound_id=inbound_id
            )

        return Inbound.from_dict(obj)

    async def add(self, inbound_data: Dict[str, Any]) -> bool:
        """Добавить inbound"""
        validate_inbound_data(inbound_data)

        try:
            result = await self.client.post(f'{INBOUNDS_API}/add', inbound_data)
            ensure_success(result, 'Не удалось добавить inbound')
        except Exception as e:
            raise add_context(
                e,
                'Не удалось добавить inbound',
                operation='addInbound',
                remark=inbound_data.get('remark'),
                port=inbound_data.get('port'),
                protocol=inbound_data.get('protocol')
            )

        logger.info(f"Inbound {inbound_data.get('remark')} added")
        return True

    async def update(self, inbound_id: int, inbound_data: Dict[str, Any]) -> bool:
        """Обновить inbound (передаются только изменяемые поля)"""
        require_inbound_id(inbound_id, 'id')

        if 'port' in inbound_data and not validate_port(inbound_data['port']):
            raise ValidationError('Некорректный порт', field='port', value=inbound_data['port'])

        try:
            result = await self.client.post(
                f'{INBOUNDS_API}/update/{inbound_id}',
                {**inbound_data, 'id': inbound_id}
            )
            ensure_success(result, 'Не удалось обновить inbound')
        except Exception as e:
            raise add_context(
                e,
                f'Не удалось обновить inbound {inbound_id}',
                operation='updateInbound',
                inbound_id=inbound_id
            )

        logger.info(f"Inbound {inbound_id} updated")
        return True

    async def delete(self, inbound_id: int) -> bool:
        """Удалить inbound"""
        require_inbound_id(inbound_id, 'id')

        try:
            result = await self.client.post(f'{INBOUNDS_API}/del/{inbound_id}')
            ensure_success(result, 'Не удалось удалить inbound')
        except Exception as e:
            raise add_context(
                e,
                f'Не удалось удалить inbound {inbound_id}',
                operation='deleteInbound',
                inbound_id=inbound_id
            )

        logger.info(f"Inbound {inbound_id} deleted")
        return True

    async def toggle_enabled(self, inbound_id: int, enabled: bool) -> bool:
        """Включить или выключить inbound"""
        await self.get_by_id(inbound_id)
        return await self.update(inbound_id, {'enable': enabled})

    async def reset_all_traffics(self) -> bool:
        """Сбросить трафик всех inbound"""
        try:
            result = await self.client.post(f'{INBOUNDS_API}/resetAllTraffics')
            ensure_success(result, 'Не удалось сбросить трафик')
        except Exception as e:
            raise add_context(e, 'Не удалось сбросить трафик', operation='resetAllTraffics')

        logger.info("All traffics reset")
        return True

    async def reset_all_client_traffics(self, inbound_id: int) -> bool:
        """Сбросить трафик всех клиентов inbound"""
        require_inbound_id(inbound_id, 'id')

        try:
            result = await self.client.post(f'{INBOUNDS_API}/resetAllClientTraffics/{inbound_id}')
            ensure_success(result, 'Не удалось сбросить трафик клиентов')
        except Exception as e:
            raise add_context(
                e,
                f'Не удалось сбросить трафик клиентов inbound {inbound_id}',
                operation='resetAllClientTraffics',
                inbound_id=inbound_id
            )

        logger.info(f"Client traffics reset for inbound {inbound_id}")
        return True

    async def delete_depleted_clients(self, inbound_id: int = ALL_INBOUNDS) -> bool:
        """
        Удалить клиентов с исчерпанным трафиком или сроком

        :param inbound_id: ID inbound или -1 для всех inbound
        """
        if inbound_id != ALL_INBOUNDS:
            require_inbound_id(inbound_id, 'id')

        try:
            result = await self.client.post(f'{INBOUNDS_API}/delDepletedClients/{inbound_id}')
            ensure_success(result, 'Не удалось удалить исчерпанных клиентов')
        except Exception as e:
            raise add_context(
                e,
                f'Не удалось удалить исчерпанных клиентов inbound {inbound_id}',
                operation='deleteDepletedClients',
                inbound_id=inbound_id
            )

        target = 'all inbounds' if inbound_id == ALL_INBOUNDS else f'inbound {inbound_id}'
        logger.info(f"Depleted clients deleted for {target}")
        return True

    async def get_online_users(self) -> List[str]:
        """
        Email клиентов онлайн

        Ошибка запроса не пробрасывается: возвращается пустой список.
        """
        try:
            result = await self.client.post(f'{INBOUNDS_API}/onlines')
        except XUIError as e:
            logger.warning(f"Failed to get online users: {e}")
            return []

        obj = result.get('obj') if result.get('success') else None
        if isinstance(obj, list):
            return obj
        if isinstance(obj, dict):
            for key in ('users', 'emails'):
                if isinstance(obj.get(key), list):
                    return obj[key]

        logger.warning(f"Unexpected response format for online users: {result}")
        return []

    async def create_backup(self) -> bool:
        """Запросить у панели создание резервной копии"""
        try:
            result = await self.client.get(f'{INBOUNDS_API}/createbackup')
            ensure_success(result, 'Не удалось создать резервную копию')
        except Exception as e:
            raise add_context(e, 'Не удалось создать резервную копию', operation='createBackup')

        logger.info("Backup creation requested")
        return True

    async def find_by_port(self, port: int) -> Optional[Inbound]:
        """Найти inbound по порту"""
        if not validate_port(port):
            raise ValidationError('Некорректный порт', field='port', value=port)

        for inbound in await self.get_list():
            if inbound.port == port:
                return inbound
        return None

    async def find_by_protocol(self, protocol: str) -> List[Inbound]:
        """Все inbound указанного протокола"""
        protocol = protocol.lower()
        return [inbound for inbound in await self.get_list() if inbound.protocol.lower() == protocol]

    async def get_summary(self) -> Dict[str, Any]:
        """Сводка: количество inbound, протоколы, суммарный трафик"""
        inbounds = await self.get_list()

        summary = {
            'total': len(inbounds),
            'enabled': 0,
            'disabled': 0,
            'protocols': {},
            'total_traffic': {'up': 0, 'down': 0, 'total': 0},
        }

        for inbound in inbounds:
            if inbound.enable:
                summary['enabled'] += 1
            else:
                summary['disabled'] += 1

            summary['protocols'][inbound.protocol] = summary['protocols'].get(inbound.protocol, 0) + 1

            summary['total_traffic']['up'] += inbound.up
            summary['total_traffic']['down'] += inbound.down
            summary['total_traffic']['total'] += inbound.total

        return summary


__all__ = [
    'ALL_INBOUNDS',
    'INBOUNDS_API',
    'INBOUND_PROTOCOLS',
    'InboundManager',
    'validate_inbound_data',
]
