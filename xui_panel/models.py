"""
Модели данных панели 3x-ui

Inbound и клиенты приходят из панели в виде JSON, поля settings и
streamSettings могут быть как строкой с JSON, так и уже разобранным объектом.
Конвертеры from_dict подставляют значения по умолчанию для отсутствующих полей.
"""
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict, Any, List, Union, ClassVar, Type

from xui_panel.utils.helpers import safe_json_parse

logger = logging.getLogger(__name__)


class Protocol(str, Enum):
    """Протоколы, для которых поддерживаются клиенты"""
    VMESS = "vmess"
    VLESS = "vless"
    TROJAN = "trojan"
    SHADOWSOCKS = "shadowsocks"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional['Protocol']:
        """Протокол по строке или None, если протокол неизвестен"""
        try:
            return cls((value or '').lower())
        except ValueError:
            return None


# ============================================================================
# Клиенты
# ============================================================================

_BASE_FIELDS = {
    'id': 'id',
    'email': 'email',
    'enable': 'enable',
    'limitIp': 'limit_ip',
    'totalGB': 'total_gb',
    'expiryTime': 'expiry_time',
    'subId': 'sub_id',
    'reset': 'reset',
}


@dataclass
class Client:
    """
    Клиент inbound (общие поля всех протоколов)

    total_gb - лимит трафика в байтах, expiry_time - timestamp в мс,
    0 в обоих полях означает отсутствие ограничения.
    """
    id: str = ""
    email: str = ""
    enable: bool = True
    limit_ip: int = 0
    total_gb: int = 0
    expiry_time: int = 0
    sub_id: str = ""
    reset: int = 0
    extra: Dict[str, Any] = field(default_factory=dict, repr=False)

    protocol: ClassVar[Optional[Protocol]] = None

    def _protocol_fields(self) -> Dict[str, Any]:
        return {}

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.extra)
        data.update({
            "id": self.id,
            "email": self.email,
            "enable": self.enable,
            "limitIp": self.limit_ip,
            "totalGB": self.total_gb,
            "expiryTime": self.expiry_time,
            "subId": self.sub_id,
            "reset": self.reset,
        })
        data.update(self._protocol_fields())
        return data

    @classmethod
    def _from_fields(cls, data: Dict[str, Any], **protocol_fields) -> 'Client':
        used = set(_BASE_FIELDS) | set(protocol_fields.pop('_keys', ()))
        return cls(
            id=str(data.get('id') or ''),
            email=str(data.get('email') or ''),
            enable=bool(data.get('enable', True)),
            limit_ip=int(data.get('limitIp') or 0),
            total_gb=int(data.get('totalGB') or 0),
            expiry_time=int(data.get('expiryTime') or 0),
            sub_id=str(data.get('subId') or ''),
            reset=int(data.get('reset') or 0),
            extra={key: value for key, value in data.items() if key not in used},
            **protocol_fields
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any], protocol: Union[str, Protocol, None] = None) -> 'Client':
        """
        Создать клиента нужного варианта по протоколу inbound

        Для неизвестного протокола возвращается базовый Client.
        """
        client_cls = CLIENT_TYPES.get(Protocol.parse(protocol), Client) if protocol else cls
        return client_cls._decode(data)

    @classmethod
    def _decode(cls, data: Dict[str, Any]) -> 'Client':
        return cls._from_fields(data)


@dataclass
class VmessClient(Client):
    alter_id: int = 0
    security: str = "auto"

    protocol: ClassVar[Optional[Protocol]] = Protocol.VMESS

    def _protocol_fields(self) -> Dict[str, Any]:
        return {"alterId": self.alter_id, "security": self.security}

    @classmethod
    def _decode(cls, data: Dict[str, Any]) -> 'VmessClient':
        return cls._from_fields(
            data,
            alter_id=int(data.get('alterId') or 0),
            security=data.get('security') or 'auto',
            _keys=('alterId', 'security')
        )


@dataclass
class VlessClient(Client):
    flow: str = ""

    protocol: ClassVar[Optional[Protocol]] = Protocol.VLESS

    def _protocol_fields(self) -> Dict[str, Any]:
        return {"flow": self.flow}

    @classmethod
    def _decode(cls, data: Dict[str, Any]) -> 'VlessClient':
        return cls._from_fields(data, flow=data.get('flow') or '', _keys=('flow',))


@dataclass
class TrojanClient(Client):
    password: str = ""

    protocol: ClassVar[Optional[Protocol]] = Protocol.TROJAN

    def _protocol_fields(self) -> Dict[str, Any]:
        return {"password": self.password}

    @classmethod
    def _decode(cls, data: Dict[str, Any]) -> 'TrojanClient':
        return cls._from_fields(data, password=data.get('password') or '', _keys=('password',))


@dataclass
class ShadowsocksClient(Client):
    """Клиент shadowsocks идентифицируется по email, поля id у него нет"""
    method: str = "aes-256-gcm"
    password: str = ""

    protocol: ClassVar[Optional[Protocol]] = Protocol.SHADOWSOCKS

    def _protocol_fields(self) -> Dict[str, Any]:
        return {"method": self.method, "password": self.password}

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.pop("id", None)
        return data

    @classmethod
    def _decode(cls, data: Dict[str, Any]) -> 'ShadowsocksClient':
        client = cls._from_fields(
            data,
            method=data.get('method') or 'aes-256-gcm',
            password=data.get('password') or '',
            _keys=('method', 'password')
        )
        if not client.id:
            client.id = client.email
        return client


CLIENT_TYPES: Dict[Optional[Protocol], Type[Client]] = {
    Protocol.VMESS: VmessClient,
    Protocol.VLESS: VlessClient,
    Protocol.TROJAN: TrojanClient,
    Protocol.SHADOWSOCKS: ShadowsocksClient,
}


# ============================================================================
# Inbound
# ============================================================================

@dataclass
class StreamSettings:
    """Транспортные настройки inbound"""
    network: str = ""
    security: str = ""
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_value(cls, value: Any) -> 'StreamSettings':
        """Разобрать streamSettings из строки или словаря"""
        data = safe_json_parse(value, {}) if value else {}
        if not isinstance(data, dict):
            logger.warning(f"Unexpected streamSettings type: {type(data).__name__}")
            data = {}
        return cls(
            network=str(data.get('network') or ''),
            security=str(data.get('security') or ''),
            raw=data
        )


@dataclass
class Inbound:
    """Inbound панели"""
    id: int
    remark: str = ""
    protocol: str = ""
    enable: bool = True
    port: int = 0
    listen: str = ""
    tag: str = ""
    up: int = 0
    down: int = 0
    total: int = 0
    expiry_time: int = 0
    settings: Union[str, Dict[str, Any], None] = None
    stream_settings: StreamSettings = field(default_factory=StreamSettings)
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Inbound':
        return cls(
            id=int(data.get('id') or 0),
            remark=str(data.get('remark') or ''),
            protocol=str(data.get('protocol') or ''),
            enable=bool(data.get('enable', True)),
            port=int(data.get('port') or 0),
            listen=str(data.get('listen') or ''),
            tag=str(data.get('tag') or ''),
            up=int(data.get('up') or 0),
            down=int(data.get('down') or 0),
            total=int(data.get('total') or 0),
            expiry_time=int(data.get('expiryTime') or 0),
            settings=data.get('settings'),
            stream_settings=StreamSettings.from_value(data.get('streamSettings')),
            raw=data
        )

    def get_settings(self) -> Dict[str, Any]:
        """
        Разобранные settings inbound

        :raises ValueError: settings содержат некорректный JSON или не являются текстом
        """
        if not self.settings:
            return {}
        if isinstance(self.settings, dict):
            return self.settings
        if not isinstance(self.settings, (str, bytes, bytearray)):
            raise ValueError(
                f"settings of inbound {self.id} has unsupported type {type(self.settings).__name__}"
            )

        parsed = json.loads(self.settings)
        if not isinstance(parsed, dict):
            raise ValueError(f"settings of inbound {self.id} is not an object")
        return parsed

    def get_clients(self) -> List[Client]:
        """Клиенты inbound в варианте, соответствующем протоколу"""
        clients = self.get_settings().get('clients') or []
        return [
            Client.from_dict(item, self.protocol)
            for item in clients
            if isinstance(item, dict)
        ]


@dataclass
class ClientTraffic:
    """Статистика трафика клиента"""
    id: int = 0
    inbound_id: int = 0
    enable: bool = True
    email: str = ""
    up: int = 0
    down: int = 0
    expiry_time: int = 0
    total: int = 0
    reset: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ClientTraffic':
        return cls(
            id=int(data.get('id') or 0),
            inbound_id=int(data.get('inboundId') or 0),
            enable=bool(data.get('enable', True)),
            email=str(data.get('email') or ''),
            up=int(data.get('up') or 0),
            down=int(data.get('down') or 0),
            expiry_time=int(data.get('expiryTime') or 0),
            total=int(data.get('total') or 0),
            reset=int(data.get('reset') or 0),
        )


# ============================================================================
# Подписки
# ============================================================================

@dataclass
class SubscriptionMember:
    """Клиент подписки вместе с inbound, в котором он находится"""
    client: Client
    inbound_id: int
    inbound_remark: str
    inbound_protocol: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'client': self.client.to_dict(),
            'inboundId': self.inbound_id,
            'inboundRemark': self.inbound_remark,
            'inboundProtocol': self.inbound_protocol,
        }


@dataclass
class Subscription:
    """Все клиенты с одинаковым subId во всех inbound"""
    sub_id: str
    clients: List[SubscriptionMember] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'subId': self.sub_id,
            'clients': [member.to_dict() for member in self.clients],
        }


# ============================================================================
# Массовые операции
# ============================================================================

@dataclass
class TrafficConfig:
    """Лимит трафика: size в единицах unit (MB/GB/TB)"""
    size: Union[int, float]
    unit: str = "GB"
    unlimited: bool = False


@dataclass
class VmessOptions:
    alter_id: Optional[int] = None
    security: Optional[str] = None


@dataclass
class VlessOptions:
    flow: Optional[str] = None


@dataclass
class TrojanOptions:
    password: Optional[str] = None


@dataclass
class ShadowsocksOptions:
    method: Optional[str] = None
    password: Optional[str] = None


@dataclass
class MassClientRequest:
    """
    Запрос на массовое создание клиентов

    limit_ip, traffic и expiry_days принимают число или 'unlimited'.
    Если sub_id не задан, на весь пакет генерируется один общий subId.
    """
    sub_id: Optional[str] = None
    enable: bool = True
    limit_ip: Union[int, str, None] = None
    traffic: Union[TrafficConfig, str, None] = None
    expiry_days: Union[int, str, None] = None
    reset: int = 0
    vmess: VmessOptions = field(default_factory=VmessOptions)
    vless: VlessOptions = field(default_factory=VlessOptions)
    trojan: TrojanOptions = field(default_factory=TrojanOptions)
    shadowsocks: ShadowsocksOptions = field(default_factory=ShadowsocksOptions)


@dataclass
class InboundResult:
    """Результат массового создания для одного inbound"""
    inbound_id: int
    inbound_remark: Optional[str]
    protocol: Optional[str]
    success: bool
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'inboundId': self.inbound_id,
            'inboundRemark': self.inbound_remark,
            'protocol': self.protocol,
            'success': self.success,
            'error': self.error,
        }


@dataclass
class DeletionResult:
    """Результат удаления одного клиента подписки"""
    inbound_id: int
    client_email: str
    success: bool
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'inboundId': self.inbound_id,
            'clientEmail': self.client_email,
            'success': self.success,
            'error': self.error,
        }


@dataclass
class MassOperationResult:
    """Итог массовой операции: счетчики и результаты по каждой цели"""
    success: int = 0
    failed: int = 0
    results: List[Union[InboundResult, DeletionResult]] = field(default_factory=list)
    sub_id: Optional[str] = None

    def record(self, result: Union[InboundResult, DeletionResult]):
        self.results.append(result)
        if result.success:
            self.success += 1
        else:
            self.failed += 1

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'success': self.success,
            'failed': self.failed,
            'results': [result.to_dict() for result in self.results],
        }
        if self.sub_id is not None:
            data['subId'] = self.sub_id
        return data


__all__ = [
    'Protocol',
    'Client',
    'VmessClient',
    'VlessClient',
    'TrojanClient',
    'ShadowsocksClient',
    'CLIENT_TYPES',
    'StreamSettings',
    'Inbound',
    'ClientTraffic',
    'SubscriptionMember',
    'Subscription',
    'TrafficConfig',
    'VmessOptions',
    'VlessOptions',
    'TrojanOptions',
    'ShadowsocksOptions',
    'MassClientRequest',
    'InboundResult',
    'DeletionResult',
    'MassOperationResult',
]
