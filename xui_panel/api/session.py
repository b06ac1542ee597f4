"""
Менеджер сессии панели 3x-ui

Хранит cookie авторизации и время входа, выполняет login при первом
обращении, по истечении срока жизни сессии и после ответа 401.
"""
import asyncio
import logging
import time
from datetime import datetime
from typing import Optional, Dict, Any, Callable, Awaitable, Mapping, TYPE_CHECKING

from xui_panel.errors import AuthenticationError, NetworkError, add_context
from xui_panel.utils.helpers import safe_json_parse

if TYPE_CHECKING:
    from xui_panel.api.base_client import PanelResponse

logger = logging.getLogger(__name__)

SESSION_COOKIE_MARKERS = ('session', '3x-ui')


def extract_session_cookie(cookies: Mapping[str, str]) -> Optional[str]:
    """Найти cookie сессии панели и вернуть его в виде 'name=value'"""
    for name, value in cookies.items():
        lowered = name.lower()
        if value and any(marker in lowered for marker in SESSION_COOKIE_MARKERS):
            return f"{name}={value}"
    return None


class SessionManager:
    """
    Менеджер сессии для авторизации в панели

    Состояние принадлежит одному XUIClient и не разделяется между клиентами.
    Параллельные попытки повторного входа объединяются через asyncio.Lock:
    задача, дождавшаяся блокировки, не логинится повторно, если сессию
    уже обновила другая задача.

    Использование:
        manager = SessionManager('admin', 'secret', send=client._send_raw)
        cookie = await manager.ensure_valid()
    """

    def __init__(
        self,
        username: str,
        password: str,
        send: Callable[..., Awaitable['PanelResponse']],
        session_ttl: float = 3600
    ):
        self._username = username
        self._password = password
        self._send = send
        self._session_ttl = session_ttl

        self._authenticated = False
        self._cookie: Optional[str] = None
        self._login_time = 0.0
        self._lock = asyncio.Lock()

    @property
    def cookie(self) -> Optional[str]:
        return self._cookie

    @property
    def is_authenticated(self) -> bool:
        return self._authenticated

    @property
    def session_age(self) -> Optional[float]:
        if not self._login_time:
            return None
        return time.time() - self._login_time

    def is_valid(self) -> bool:
        """Сессия есть и не старше session_ttl"""
        if not self._authenticated or not self._cookie:
            return False
        return time.time() - self._login_time <= self._session_ttl

    def _clear(self):
        self._authenticated = False
        self._cookie = None
        self._login_time = 0.0

    async def login(self) -> str:
        """
        Авторизоваться в панели

        :return: cookie сессии в виде 'name=value'
        :raises AuthenticationError: неверные учетные данные или нет cookie
        """
        logger.info("Attempting to login...")

        try:
            response = await self._send(
                'POST',
                '/login',
                data={'username': self._username, 'password': self._password}
            )

            if response.status >= 500:
                raise NetworkError(
                    f"Ошибка сервера при авторизации: HTTP {response.status}",
                    status_code=response.status
                )
            if response.status != 200:
                raise AuthenticationError(
                    f"Ошибка авторизации: HTTP {response.status}",
                    status_code=response.status
                )

            body = safe_json_parse(response.text, {})
            if isinstance(body, dict) and body.get('success') is False:
                raise AuthenticationError(body.get('msg') or 'Неверные учетные данные')

            cookie = extract_session_cookie(response.cookies)
            if not cookie:
                raise AuthenticationError('Сервер не вернул cookie сессии')

        except Exception as e:
            self._clear()
            raise add_context(e, 'Ошибка входа в панель', operation='login', username=self._username)

        self._cookie = cookie
        self._authenticated = True
        self._login_time = time.time()

        logger.info("Login successful")
        return cookie

    async def ensure_valid(self) -> str:
        """Вернуть действующий cookie, при необходимости выполнив login"""
        if self.is_valid():
            return self._cookie

        async with self._lock:
            if self.is_valid():
                return self._cookie

            if self._login_time:
                logger.info("Session expired, logging in again")
            return await self.login()

    async def reauthenticate(self, rejected_cookie: Optional[str]) -> str:
        """
        Повторный вход после ответа 401

        Если пока задача ждала блокировку, сессия уже была обновлена,
        повторный login не выполняется.
        """
        async with self._lock:
            if self.is_valid() and self._cookie != rejected_cookie:
                return self._cookie

            self.invalidate()
            return await self.login()

    def invalidate(self):
        """Инвалидировать авторизацию (ответ 401)"""
        if self._authenticated:
            logger.debug("Session invalidated")
        self._clear()

    def logout(self):
        """Сбросить сессию; повторный вызов ничего не делает"""
        was_authenticated = self._authenticated
        self._clear()
        if was_authenticated:
            logger.info("Logged out successfully")

    def get_status(self) -> Dict[str, Any]:
        """Статус авторизации"""
        return {
            'is_authenticated': self._authenticated,
            'last_login': datetime.fromtimestamp(self._login_time) if self._login_time else None,
            'session_age': self.session_age,
        }


__all__ = ['SessionManager', 'extract_session_cookie']
