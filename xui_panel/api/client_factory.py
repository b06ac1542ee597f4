"""
Создание клиентов под протокол inbound

build_client собирает клиента нужного варианта (vmess / vless / trojan /
shadowsocks) из MassClientRequest, client_key возвращает ключ, по которому
панель удаляет и обновляет клиента.
"""
import logging
from typing import Optional

from xui_panel.errors import ValidationError
from xui_panel.models import (
    Client,
    Inbound,
    MassClientRequest,
    Protocol,
    ShadowsocksClient,
    StreamSettings,
    TrafficConfig,
    TrojanClient,
    VlessClient,
    VmessClient,
)
from xui_panel.utils.helpers import (
    UNLIMITED,
    convert_expiry_days,
    convert_ip_limit,
    generate_random_email,
    generate_uuid,
    traffic_to_bytes,
)
from xui_panel.utils.validators import TRAFFIC_UNITS, require_non_negative_or_unlimited

logger = logging.getLogger(__name__)

DEFAULT_LIMIT_IP = 2
XTLS_VISION_FLOW = "xtls-rprx-vision"


def validate_mass_request(request: MassClientRequest):
    """
    Проверить запрос массового создания до обращения к панели

    limit_ip и expiry_days - неотрицательное целое или 'unlimited',
    traffic - 'unlimited' или TrafficConfig с положительным size и unit MB/GB/TB.
    """
    require_non_negative_or_unlimited(request.limit_ip, 'limit_ip')
    require_non_negative_or_unlimited(request.expiry_days, 'expiry_days')

    traffic = request.traffic
    if traffic is None or traffic == UNLIMITED:
        return

    if not isinstance(traffic, TrafficConfig):
        raise ValidationError('traffic должен быть TrafficConfig или "unlimited"', field='traffic', value=traffic)

    if traffic.unlimited:
        return

    size = traffic.size
    if isinstance(size, bool) or not isinstance(size, (int, float)) or size <= 0:
        raise ValidationError('Размер трафика должен быть положительным числом', field='traffic.size', value=size)

    if traffic.unit not in TRAFFIC_UNITS:
        raise ValidationError(
            f'Единица трафика должна быть одной из {", ".join(TRAFFIC_UNITS)}',
            field='traffic.unit',
            value=traffic.unit
        )


def _traffic_bytes(traffic) -> int:
    if traffic is None or traffic == UNLIMITED:
        return 0
    if traffic.unlimited:
        return 0
    return traffic_to_bytes(traffic.size, traffic.unit)


def determine_vless_flow(stream_settings: Optional[StreamSettings], request: MassClientRequest) -> str:
    """
    Flow для vless клиента

    Явно заданный flow используется как есть. Иначе flow непустой только
    при security=xtls, для tls / reality / tcp / ws / grpc / h2 /
    httpupgrade и любых других сочетаний flow пустой.
    """
    if request.vless.flow is not None:
        return request.vless.flow

    if stream_settings is None:
        return ""

    security = (stream_settings.security or '').lower()
    if security == 'xtls':
        return XTLS_VISION_FLOW
    return ""


def build_client(inbound: Inbound, request: MassClientRequest) -> Client:
    """
    Собрать клиента под протокол inbound

    subId берется из запроса: при массовом создании он заполнен заранее
    и общий для всего пакета.

    :raises ValidationError: протокол inbound не поддерживается
    """
    protocol = Protocol.parse(inbound.protocol)
    if protocol is None:
        raise ValidationError(
            f'Протокол {inbound.protocol!r} не поддерживается',
            field='protocol',
            value=inbound.protocol
        )

    common = dict(
        id=generate_uuid(),
        email=generate_random_email(),
        enable=request.enable,
        limit_ip=DEFAULT_LIMIT_IP if request.limit_ip is None else convert_ip_limit(request.limit_ip),
        total_gb=_traffic_bytes(request.traffic),
        expiry_time=0 if request.expiry_days is None else convert_expiry_days(request.expiry_days),
        sub_id=request.sub_id or "",
        reset=request.reset,
    )

    if protocol == Protocol.VMESS:
        options = request.vmess
        return VmessClient(
            alter_id=0 if options.alter_id is None else options.alter_id,
            security=options.security or "auto",
            **common
        )

    if protocol == Protocol.VLESS:
        return VlessClient(flow=determine_vless_flow(inbound.stream_settings, request), **common)

    if protocol == Protocol.TROJAN:
        return TrojanClient(password=request.trojan.password or generate_uuid(), **common)

    # shadowsocks идентифицируется по email
    common['id'] = common['email']
    options = request.shadowsocks
    return ShadowsocksClient(
        method=options.method or "aes-256-gcm",
        password=options.password or generate_uuid(),
        **common
    )


def client_key(client: Client, protocol) -> str:
    """
    Ключ клиента для delClient / updateClient

    vmess и vless - id, trojan - password, shadowsocks - email.

    :raises ValidationError: протокол не поддерживается
    """
    parsed = Protocol.parse(protocol)

    if parsed in (Protocol.VMESS, Protocol.VLESS):
        return client.id
    if parsed == Protocol.TROJAN:
        return getattr(client, 'password', '') or client.extra.get('password', '')
    if parsed == Protocol.SHADOWSOCKS:
        return client.email

    raise ValidationError(f'Протокол {protocol!r} не поддерживается', field='protocol', value=protocol)


__all__ = [
    'DEFAULT_LIMIT_IP',
    'XTLS_VISION_FLOW',
    'validate_mass_request',
    'determine_vless_flow',
    'build_client',
    'client_key',
]
