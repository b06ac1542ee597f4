"""
Конфигурация клиента 3x-ui
"""
import os
from dataclasses import dataclass, fields
from typing import Optional, Dict, Any

from dotenv import load_dotenv

from xui_panel.errors import ValidationError

_TRUE_VALUES = ('1', 'true', 'yes', 'on')


@dataclass
class ClientConfig:
    """Параметры подключения к панели"""
    base_url: str
    username: str
    password: str
    timeout: float = 30.0  # секунды на один HTTP запрос
    retry_attempts: int = 3
    retry_delay: float = 1.0  # базовая задержка retry, секунды
    ssl_verify: bool = False
    session_ttl: float = 3600  # срок жизни сессии до повторного login
    breaker_threshold: int = 5
    breaker_timeout: float = 60.0
    user_agent: str = "xui-panel/1.0.0"

    def __post_init__(self):
        if not self.base_url or not self.username or not self.password:
            raise ValidationError('base_url, username и password обязательны')
        self.base_url = self.base_url.rstrip('/')

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ClientConfig':
        """Создать конфигурацию из словаря (лишние ключи игнорируются)"""
        known = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in data.items() if key in known})

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> 'ClientConfig':
        """
        Создать конфигурацию из переменных окружения

        Переменные:
        - XUI_BASE_URL, XUI_USERNAME, XUI_PASSWORD (обязательные)
        - XUI_TIMEOUT, XUI_RETRY_ATTEMPTS, XUI_RETRY_DELAY, XUI_SSL_VERIFY
        """
        load_dotenv(env_file)

        return cls(
            base_url=os.getenv('XUI_BASE_URL', ''),
            username=os.getenv('XUI_USERNAME', ''),
            password=os.getenv('XUI_PASSWORD', ''),
            timeout=float(os.getenv('XUI_TIMEOUT', 30.0)),
            retry_attempts=int(os.getenv('XUI_RETRY_ATTEMPTS', 3)),
            retry_delay=float(os.getenv('XUI_RETRY_DELAY', 1.0)),
            ssl_verify=os.getenv('XUI_SSL_VERIFY', 'false').lower() in _TRUE_VALUES,
        )


__all__ = ['ClientConfig']
