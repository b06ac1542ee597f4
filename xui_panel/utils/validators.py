"""
Валидаторы входных данных
"""
import re
from typing import Any

from xui_panel.errors import ValidationError

UUID_PATTERN = re.compile(
    r'^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$',
    re.IGNORECASE
)

TRAFFIC_UNITS = ('MB', 'GB', 'TB')


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_port(port: Any) -> bool:
    """Порт в диапазоне 1-65535"""
    return _is_int(port) and 0 < port <= 65535


def validate_uuid(value: Any) -> bool:
    """
    Проверка формата UUID

    :param value: Строка для проверки
    :return: True если строка - UUID
    """
    if not value or not isinstance(value, str):
        return False
    return bool(UUID_PATTERN.match(value))


def validate_inbound_id(inbound_id: Any) -> bool:
    """Id inbound - положительное целое"""
    return _is_int(inbound_id) and inbound_id > 0


def validate_client_id(client_id: Any, protocol: str) -> bool:
    """
    Проверка ключа клиента с учетом протокола

    Для vmess/vless ключ - UUID, для trojan/shadowsocks - любая непустая строка.
    """
    if not client_id or not isinstance(client_id, str):
        return False

    protocol = (protocol or '').lower()
    if protocol in ('vmess', 'vless'):
        return validate_uuid(client_id)
    if protocol in ('trojan', 'shadowsocks'):
        return bool(client_id.strip())
    return False


def require_inbound_id(inbound_id: Any, field: str = 'inbound_id'):
    """Бросить ValidationError, если id inbound некорректен"""
    if not validate_inbound_id(inbound_id):
        raise ValidationError('Некорректный ID inbound', field=field, value=inbound_id)


def require_non_empty(value: Any, field: str):
    """Бросить ValidationError для пустой строки"""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f'Поле {field} обязательно', field=field, value=value)


def require_non_negative_or_unlimited(value: Any, field: str):
    """Значение - неотрицательное целое или 'unlimited'"""
    if value is None or value == 'unlimited':
        return
    if not _is_int(value) or value < 0:
        raise ValidationError(
            f'{field} должно быть неотрицательным целым или "unlimited"',
            field=field,
            value=value
        )


__all__ = [
    'TRAFFIC_UNITS',
    'validate_port',
    'validate_uuid',
    'validate_inbound_id',
    'validate_client_id',
    'require_inbound_id',
    'require_non_empty',
    'require_non_negative_or_unlimited',
]
