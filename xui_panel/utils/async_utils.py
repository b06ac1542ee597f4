"""
Retry с экспоненциальной задержкой и circuit breaker для вызовов панели
"""
import asyncio
import random
import time
import logging
from typing import TypeVar, Callable, Awaitable, Optional, Dict, Any
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from xui_panel.errors import NetworkError, ServiceUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar('T')


def is_retryable(error: BaseException) -> bool:
    """Сетевые сбои повторяются, ошибки авторизации - нет"""
    return (
        isinstance(error, NetworkError)
        and error.status_code not in (401, 403)
    )


@dataclass
class RetryConfig:
    """Конфигурация retry"""
    max_retries: int = 3
    base_delay: float = 1.0
    max_jitter: float = 1.0
    retryable: Callable[[BaseException], bool] = is_retryable


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Вычислить задержку перед следующей попыткой"""
    delay = config.base_delay * (2 ** attempt)
    if config.max_jitter > 0:
        delay += random.uniform(0, config.max_jitter)
    return delay


class RetryPolicy:
    """
    Повтор операции с экспоненциальной задержкой и jitter

    Делает до max_retries + 1 попыток. Повторяются только ошибки,
    для которых предикат retryable вернул True, остальные пробрасываются сразу.

    Использование:
        policy = RetryPolicy(RetryConfig(max_retries=3, base_delay=1.0))
        result = await policy.execute(lambda: fetch_data())
    """

    def __init__(self, config: RetryConfig = None):
        self.config = config or RetryConfig()

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        max_retries: Optional[int] = None,
        base_delay: Optional[float] = None,
        retryable: Optional[Callable[[BaseException], bool]] = None
    ) -> T:
        """Выполнить операцию с повторами"""
        config = RetryConfig(
            max_retries=self.config.max_retries if max_retries is None else max_retries,
            base_delay=self.config.base_delay if base_delay is None else base_delay,
            max_jitter=self.config.max_jitter,
            retryable=retryable or self.config.retryable
        )

        attempt = 0
        while True:
            try:
                return await operation()
            except Exception as e:
                if attempt >= config.max_retries or not config.retryable(e):
                    if attempt > 0:
                        logger.error(
                            f"Giving up after {attempt + 1}/{config.max_retries + 1} attempts: {e}"
                        )
                    raise

                delay = calculate_delay(attempt, config)
                logger.warning(
                    f"API call failed, retrying in {delay:.2f}s. "
                    f"Attempt {attempt + 1}/{config.max_retries + 1}: {e}"
                )
                await asyncio.sleep(delay)
                attempt += 1


class CircuitBreaker:
    """
    Circuit Breaker для защиты от каскадных сбоев

    Состояния:
    - CLOSED: нормальная работа
    - OPEN: после failure_threshold сбоев подряд все вызовы отклоняются
    - HALF_OPEN: после recovery_timeout пропускается пробный вызов;
      успех закрывает breaker, сбой снова открывает его
    """

    class State(Enum):
        CLOSED = "closed"
        OPEN = "open"
        HALF_OPEN = "half_open"

    def __init__(
        self,
        name: str = "unknown",
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout

        self._state = self.State.CLOSED
        self._failure_count = 0
        self._next_attempt = 0.0
        self._lock = asyncio.Lock()

    @property
    def state(self) -> State:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    def is_open(self) -> bool:
        return (
            self._failure_count >= self.failure_threshold
            and time.time() < self._next_attempt
        )

    async def _before_call(self):
        """Отклонить вызов или перевести breaker в HALF_OPEN"""
        async with self._lock:
            if self._failure_count < self.failure_threshold:
                return

            now = time.time()
            if now < self._next_attempt:
                raise ServiceUnavailableError(self.name, retry_after=self._next_attempt - now)

            self._failure_count = 0
            self._state = self.State.HALF_OPEN
            logger.info(f"Circuit breaker {self.name}: OPEN -> HALF_OPEN")

    async def _on_success(self):
        async with self._lock:
            if self._state == self.State.HALF_OPEN:
                logger.info(f"Circuit breaker {self.name}: HALF_OPEN -> CLOSED")
            self._state = self.State.CLOSED
            self._failure_count = 0

    async def _on_failure(self):
        async with self._lock:
            if self._state == self.State.HALF_OPEN:
                self._failure_count = self.failure_threshold
            else:
                self._failure_count += 1

            if self._failure_count >= self.failure_threshold:
                if self._state != self.State.OPEN:
                    logger.error(
                        f"Circuit breaker {self.name} opened after "
                        f"{self._failure_count} failures"
                    )
                self._state = self.State.OPEN
                self._next_attempt = time.time() + self.recovery_timeout

    async def call(self, func: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        """Выполнить вызов через circuit breaker"""
        await self._before_call()

        try:
            result = await func(*args, **kwargs)
        except Exception:
            await self._on_failure()
            raise

        await self._on_success()
        return result

    def get_status(self) -> Dict[str, Any]:
        """Текущее состояние breaker"""
        is_open = self.is_open()
        state = self._state
        if state == self.State.OPEN and not is_open:
            # timeout истек, следующий вызов будет пробным
            state = self.State.HALF_OPEN
        return {
            'name': self.name,
            'state': state.value,
            'failures': self._failure_count,
            'is_open': is_open,
            'next_attempt': datetime.fromtimestamp(self._next_attempt) if is_open else None
        }


__all__ = [
    'RetryConfig',
    'RetryPolicy',
    'calculate_delay',
    'is_retryable',
    'CircuitBreaker',
]
