"""
Иерархия ошибок клиента 3x-ui

Классы ошибок различаются по виду, чтобы слой retry / circuit breaker
мог решать, какие сбои повторять:
- ValidationError: входные данные не прошли проверку (до сетевого вызова)
- AuthenticationError: учетные данные отклонены или нет cookie сессии
- NetworkError: сбой транспорта, таймаут или 5xx (повторяется)
- APIError: прочие 4xx и ответы с success=false
"""
from datetime import datetime
from typing import Optional, Dict, Any


# ============================================================================
# Базовый класс
# ============================================================================

class XUIError(Exception):
    """Базовая ошибка клиента 3x-ui"""

    def __init__(self, message: str, code: str = "UNKNOWN", details: Dict[str, Any] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}
        self.timestamp = datetime.now()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat()
        }

    def __str__(self):
        context = ", ".join(
            f"{key}={value}" for key, value in self.details.items() if value is not None
        )
        if context:
            return f"[{self.code}] {self.message} ({context})"
        return f"[{self.code}] {self.message}"


# ============================================================================
# Ошибки API
# ============================================================================

class APIError(XUIError):
    """Ошибка API панели (4xx или success=false)"""

    def __init__(self, message: str, code: str = "API_ERROR",
                 status_code: int = None, response: Any = None, **kwargs):
        super().__init__(message, code, kwargs.get('details', {}))
        self.status_code = status_code
        self.response = response


class AuthenticationError(APIError):
    """Ошибка аутентификации в панели"""

    def __init__(self, message: str = "Ошибка аутентификации", status_code: int = 401, **details):
        super().__init__(message, code="AUTH_ERROR", status_code=status_code, details=details)


class ValidationError(APIError):
    """Ошибка валидации входных данных"""

    def __init__(self, message: str, field: str = None, value: Any = None, status_code: int = 400):
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            status_code=status_code,
            details={'field': field, 'value': value}
        )
        self.field = field
        self.value = value


class ServiceUnavailableError(APIError):
    """Circuit breaker открыт, вызов отклонен без обращения к панели"""

    def __init__(self, name: str, retry_after: float = None):
        super().__init__(
            f"Circuit breaker для {name} открыт, сервис временно недоступен",
            code="SERVICE_UNAVAILABLE",
            status_code=503,
            details={'breaker': name, 'retry_after': retry_after}
        )


# ============================================================================
# Сетевые ошибки
# ============================================================================

class NetworkError(APIError):
    """Сбой транспорта или ответ 5xx"""

    def __init__(self, message: str, status_code: int = None, code: str = "NETWORK_ERROR", **details):
        super().__init__(message, code=code, status_code=status_code, details=details)


class PanelConnectionError(NetworkError):
    """Не удалось установить соединение с панелью"""

    def __init__(self, message: str = "Не удалось подключиться", url: str = None, original: Exception = None):
        details = {'url': url}
        if original:
            details['original_error'] = str(original)
        super().__init__(message, code="CONNECTION_ERROR", **details)


class PanelTimeoutError(NetworkError):
    """Таймаут одного HTTP запроса"""

    def __init__(self, message: str = "Превышено время ожидания", url: str = None, timeout: float = None):
        super().__init__(message, code="TIMEOUT_ERROR", url=url, timeout=timeout)


# ============================================================================
# Контекст ошибок
# ============================================================================

def add_context(
    error: BaseException,
    default_message: str = "Непредвиденная ошибка",
    **context
) -> XUIError:
    """
    Дополнить ошибку контекстом операции

    Ошибки пакета получают контекст в details и возвращаются как есть,
    прочие исключения оборачиваются в APIError.

    Использование:
        try:
            ...
        except Exception as e:
            raise add_context(e, "Не удалось добавить клиента",
                              operation='addClient', inbound_id=3)
    """
    if isinstance(error, XUIError):
        for key, value in context.items():
            error.details.setdefault(key, value)
        return error

    wrapped = APIError(f"{default_message}: {error}", details=dict(context))
    wrapped.__cause__ = error
    return wrapped


__all__ = [
    'XUIError',
    'APIError',
    'AuthenticationError',
    'ValidationError',
    'ServiceUnavailableError',
    'NetworkError',
    'PanelConnectionError',
    'PanelTimeoutError',
    'add_context',
]
