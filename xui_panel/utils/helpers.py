"""
Вспомогательные функции: генерация идентификаторов, конвертация лимитов,
безопасный разбор JSON
"""
import json
import random
import time
import uuid
import logging
from typing import Any, Union

logger = logging.getLogger(__name__)

UNLIMITED = "unlimited"

_EMAIL_ALPHABET = "abcdefghijklmnopqrstuvwxyz0123456789"

_UNIT_MULTIPLIERS = {
    'MB': 1024 ** 2,
    'GB': 1024 ** 3,
    'TB': 1024 ** 4,
}


def generate_uuid() -> str:
    """Новый UUID4 для id клиента или subId"""
    return str(uuid.uuid4())


def generate_random_email(length: int = 8) -> str:
    """
    Случайный email клиента из строчных букв и цифр (например "8s884159")

    Коллизии не исключены: если нужна гарантированная уникальность,
    email передается явно.
    """
    return ''.join(random.choice(_EMAIL_ALPHABET) for _ in range(length))


def safe_json_parse(text: Any, fallback: Any = None) -> Any:
    """Разобрать JSON, при ошибке вернуть fallback и записать предупреждение"""
    if not isinstance(text, (str, bytes, bytearray)):
        return text if text is not None else fallback

    try:
        return json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.warning(f"Failed to parse JSON: {e}")
        return fallback


def traffic_to_bytes(size: Union[int, float], unit: str) -> int:
    """Перевести объем трафика в байты (MB/GB/TB, степени 1024)"""
    return int(size * _UNIT_MULTIPLIERS[unit])


def convert_ip_limit(limit: Union[int, str]) -> int:
    """Лимит IP; 'unlimited' означает 0 (без ограничений)"""
    if limit == UNLIMITED:
        return 0
    return max(0, limit)


def convert_expiry_days(days: Union[int, str], now_ms: int = None) -> int:
    """
    Перевести срок в днях в timestamp истечения (мс)

    'unlimited' и 0 означают бессрочного клиента (expiryTime = 0).
    """
    if days == UNLIMITED or days <= 0:
        return 0

    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return now_ms + days * 24 * 60 * 60 * 1000


__all__ = [
    'UNLIMITED',
    'generate_uuid',
    'generate_random_email',
    'safe_json_parse',
    'traffic_to_bytes',
    'convert_ip_limit',
    'convert_expiry_days',
]
