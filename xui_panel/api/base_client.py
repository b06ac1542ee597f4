"""
Базовый API клиент для работы с панелью 3x-ui

Предоставляет:
- Единый путь выполнения запросов: retry -> circuit breaker -> сессия -> HTTP
- Повторный вход и однократный повтор запроса при ответе 401
- Обработка ошибок с типизированными исключениями
- Защитный разбор ответов (некорректный JSON превращается в пустой ответ)
- Поддержка SSL с возможностью отключения верификации
"""
import ssl
import asyncio
import aiohttp
import logging
from typing import Optional, Dict, Any
from dataclasses import dataclass, field

from xui_panel.config import ClientConfig
from xui_panel.errors import (
    APIError,
    AuthenticationError,
    NetworkError,
    PanelConnectionError,
    PanelTimeoutError,
    ValidationError,
)
from xui_panel.api.session import SessionManager
from xui_panel.utils.async_utils import CircuitBreaker, RetryConfig, RetryPolicy
from xui_panel.utils.helpers import safe_json_parse

logger = logging.getLogger(__name__)


@dataclass
class PanelResponse:
    """Прочитанный HTTP ответ панели"""
    status: int
    reason: str = ""
    text: str = ""
    cookies: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


def response_message(result: Dict[str, Any]) -> Optional[str]:
    """Сообщение панели из конверта ответа (поле msg или message)"""
    if not isinstance(result, dict):
        return None
    return result.get('msg') or result.get('message') or None


def ensure_success(result: Dict[str, Any], default_message: str, require_obj: bool = False) -> Any:
    """
    Проверить конверт ответа панели и вернуть obj

    :raises APIError: success=false или нет obj при require_obj
    """
    if not result.get('success') or (require_obj and result.get('obj') is None):
        raise APIError(response_message(result) or default_message, response=result)
    return result.get('obj')


class XUIClient:
    """
    Асинхронный клиент панели 3x-ui

    Каждый вызов проходит через RetryPolicy, затем CircuitBreaker, затем
    проверку сессии. Состояние сессии и breaker принадлежит экземпляру.

    Использование:
        config = ClientConfig(base_url='https://panel:2053/path',
                              username='admin', password='secret')
        async with XUIClient(config) as client:
            result = await client.get('/panel/api/inbounds/list')
    """

    def __init__(self, config: ClientConfig, http_session: aiohttp.ClientSession = None):
        self.config = config
        self._http = http_session
        self._owns_http = http_session is None

        self._session_manager = SessionManager(
            config.username,
            config.password,
            send=self._send_raw,
            session_ttl=config.session_ttl
        )
        self._circuit_breaker = CircuitBreaker(
            name='3x-ui-api',
            failure_threshold=config.breaker_threshold,
            recovery_timeout=config.breaker_timeout
        )
        self._retry = RetryPolicy(RetryConfig(
            max_retries=config.retry_attempts,
            base_delay=config.retry_delay
        ))

        logger.info(f"Initialized 3x-ui client for {self.base_url}")

    @classmethod
    def create(cls, base_url: str, username: str, password: str, **options) -> 'XUIClient':
        """Создать клиент без явного ClientConfig"""
        return cls(ClientConfig(base_url=base_url, username=username, password=password, **options))

    @property
    def base_url(self) -> str:
        return self.config.base_url

    @property
    def session_manager(self) -> SessionManager:
        return self._session_manager

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._circuit_breaker

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry

    def _create_ssl_context(self) -> ssl.SSLContext:
        """Создать SSL контекст"""
        ctx = ssl.create_default_context()
        if not self.config.ssl_verify:
            ctx.check_hostname = False
            ctx.verify_mode = ssl.CERT_NONE
        return ctx

    async def _get_http(self) -> aiohttp.ClientSession:
        """Получить или создать HTTP сессию"""
        if self._http is None or self._http.closed:
            connector = aiohttp.TCPConnector(
                ssl=self._create_ssl_context(),
                limit=10,
                limit_per_host=5
            )
            self._http = aiohttp.ClientSession(
                connector=connector,
                timeout=aiohttp.ClientTimeout(total=self.config.timeout),
                cookie_jar=aiohttp.DummyCookieJar(),
                headers={'User-Agent': self.config.user_agent}
            )
            self._owns_http = True
        return self._http

    async def _send_raw(
        self,
        method: str,
        path: str,
        data: Any = None,
        json_data: Any = None,
        headers: Dict[str, str] = None,
        cookie: str = None
    ) -> PanelResponse:
        """Выполнить HTTP запрос без авторизации"""
        url = f"{self.base_url}{path}"
        http = await self._get_http()

        request_headers = dict(headers or {})
        if cookie:
            request_headers['Cookie'] = cookie

        try:
            async with http.request(
                method,
                url,
                data=data,
                json=json_data,
                headers=request_headers,
                timeout=aiohttp.ClientTimeout(total=self.config.timeout)
            ) as response:
                raw = await response.read()
                return PanelResponse(
                    status=response.status,
                    reason=response.reason or '',
                    text=raw.decode('utf-8', errors='replace'),
                    cookies={name: morsel.value for name, morsel in response.cookies.items()}
                )

        except asyncio.TimeoutError as e:
            raise PanelTimeoutError(
                f"Таймаут запроса после {self.config.timeout}s",
                url=url,
                timeout=self.config.timeout
            ) from e
        except aiohttp.ClientError as e:
            raise PanelConnectionError(
                f"Сетевой запрос не выполнен: {e}",
                url=url,
                original=e
            ) from e

    async def _send_authorized(self, method: str, path: str, **kwargs) -> PanelResponse:
        """
        Выполнить запрос с cookie сессии

        На ответ 401 сессия инвалидируется, выполняется повторный вход и
        запрос повторяется ровно один раз. Ответы 5xx поднимаются как
        NetworkError, чтобы их учитывал circuit breaker.
        """
        # неудачный вход тоже считается сбоем breaker
        cookie = await self._session_manager.ensure_valid()
        response = await self._send_raw(method, path, cookie=cookie, **kwargs)

        if response.status == 401:
            logger.warning("Authentication failed, attempting re-login...")
            cookie = await self._session_manager.reauthenticate(cookie)
            response = await self._send_raw(method, path, cookie=cookie, **kwargs)

            if response.status == 401:
                self._session_manager.invalidate()

        if response.status >= 500:
            body = self._decode_body(response)
            raise NetworkError(
                response_message(body) or f"Ошибка сервера: HTTP {response.status} {response.reason}",
                status_code=response.status,
                path=path
            )

        return response

    @staticmethod
    def _decode_body(response: PanelResponse) -> Dict[str, Any]:
        """Разобрать тело ответа; некорректный JSON дает пустой словарь"""
        if not response.text:
            return {}

        body = safe_json_parse(response.text, {})
        if not isinstance(body, dict):
            logger.warning(f"Unexpected response body type: {type(body).__name__}, using empty object")
            return {}
        return body

    @staticmethod
    def _raise_for_status(response: PanelResponse, body: Dict[str, Any], path: str):
        """Преобразовать HTTP статус ошибки в исключение"""
        status = response.status
        message = response_message(body)

        if status == 401:
            raise AuthenticationError('Неверные учетные данные или сессия истекла', path=path)

        if status == 403:
            raise AuthenticationError('Доступ запрещен, проверьте права', status_code=403, path=path)

        if status == 404:
            raise APIError('Ресурс не найден', status_code=status, response=body, details={'path': path})

        if status == 422:
            raise ValidationError(message or 'Ошибка валидации', field=body.get('field'), status_code=status)

        if 400 <= status < 500:
            raise APIError(
                message or f"Ошибка клиента: {response.reason}",
                status_code=status,
                response=body,
                details={'path': path}
            )

        raise NetworkError(f"HTTP {status}: {response.reason}", status_code=status, path=path)

    async def _perform(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        response = await self._circuit_breaker.call(self._send_authorized, method, path, **kwargs)
        body = self._decode_body(response)

        if not response.ok:
            self._raise_for_status(response, body, path)

        return body

    async def request(
        self,
        method: str,
        path: str,
        data: Any = None,
        json_data: Any = None
    ) -> Dict[str, Any]:
        """
        Выполнить API запрос и вернуть разобранный конверт
        {success, msg, obj}
        """
        return await self._retry.execute(
            lambda: self._perform(method, path, data=data, json_data=json_data)
        )

    async def get(self, path: str) -> Dict[str, Any]:
        """GET запрос"""
        return await self.request('GET', path)

    async def post(self, path: str, data: Any = None, form: bool = False) -> Dict[str, Any]:
        """POST запрос; словарь отправляется как JSON, при form=True - как форма"""
        if data is None:
            return await self.request('POST', path)
        if form:
            return await self.request('POST', path, data=data)
        return await self.request('POST', path, json_data=data)

    async def login(self) -> None:
        """Авторизоваться в панели"""
        await self._session_manager.login()

    def logout(self) -> None:
        """Сбросить сессию"""
        self._session_manager.logout()

    async def check_connection(self) -> bool:
        """Проверить доступность панели"""
        try:
            await self._send_raw('GET', '/')
            return True
        except NetworkError as e:
            logger.warning(f"Connection check failed: {e}")
            return False

    def get_auth_status(self) -> Dict[str, Any]:
        """Статус авторизации"""
        return self._session_manager.get_status()

    def get_circuit_breaker_status(self) -> Dict[str, Any]:
        """Статус circuit breaker"""
        return self._circuit_breaker.get_status()

    async def close(self):
        """Закрыть клиент"""
        self._session_manager.logout()
        if self._owns_http and self._http is not None and not self._http.closed:
            await self._http.close()

    async def __aenter__(self) -> 'XUIClient':
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


__all__ = [
    'PanelResponse',
    'XUIClient',
    'ensure_success',
    'response_message',
]
