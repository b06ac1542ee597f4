"""
Тесты создания клиентов под протокол inbound
"""
import re

import pytest

from xui_panel.api.client_factory import (
    DEFAULT_LIMIT_IP,
    build_client,
    client_key,
    determine_vless_flow,
    validate_mass_request,
)
from xui_panel.errors import ValidationError
from xui_panel.models import (
    Inbound,
    MassClientRequest,
    Protocol,
    ShadowsocksClient,
    ShadowsocksOptions,
    StreamSettings,
    TrafficConfig,
    TrojanClient,
    TrojanOptions,
    VlessClient,
    VlessOptions,
    VmessClient,
    VmessOptions,
)
from xui_panel.utils.validators import validate_uuid

from conftest import make_inbound


def inbound(protocol: str, **kwargs) -> Inbound:
    return Inbound.from_dict(make_inbound(1, protocol, **kwargs))


class TestVlessFlow:
    """Таблица выбора flow для vless"""

    @pytest.mark.parametrize("network, security, expected", [
        ("tcp", "xtls", "xtls-rprx-vision"),
        ("tcp", "XTLS", "xtls-rprx-vision"),
        ("tcp", "tls", ""),
        ("tcp", "reality", ""),
        ("tcp", "", ""),
        ("tcp", "none", ""),
        ("ws", "", ""),
        ("grpc", "tls", ""),
        ("h2", "tls", ""),
        ("httpupgrade", "none", ""),
        ("kcp", "", ""),
        ("", "", ""),
    ])
    def test_derived_flow(self, network, security, expected):
        stream = StreamSettings(network=network, security=security)
        assert determine_vless_flow(stream, MassClientRequest()) == expected

    @pytest.mark.parametrize("explicit", ["xtls-rprx-vision", "", "custom-flow"])
    def test_explicit_flow_used_verbatim(self, explicit):
        request = MassClientRequest(vless=VlessOptions(flow=explicit))
        stream = StreamSettings(network="tcp", security="reality")
        assert determine_vless_flow(stream, request) == explicit

    def test_missing_stream_settings(self):
        assert determine_vless_flow(None, MassClientRequest()) == ""

    def test_built_vless_client_uses_flow(self):
        client = build_client(inbound("vless", security="xtls"), MassClientRequest(sub_id="s"))
        assert isinstance(client, VlessClient)
        assert client.flow == "xtls-rprx-vision"


class TestBuildClient:

    def test_common_fields(self):
        client = build_client(inbound("vmess"), MassClientRequest(sub_id="sub-1"))

        assert validate_uuid(client.id)
        assert re.fullmatch(r"[a-z0-9]{8}", client.email)
        assert client.sub_id == "sub-1"
        assert client.enable is True
        assert client.limit_ip == DEFAULT_LIMIT_IP
        assert client.total_gb == 0
        assert client.expiry_time == 0
        assert client.reset == 0

    def test_vmess_defaults_and_options(self):
        client = build_client(inbound("vmess"), MassClientRequest())
        assert isinstance(client, VmessClient)
        assert (client.alter_id, client.security) == (0, "auto")

        client = build_client(
            inbound("vmess"),
            MassClientRequest(vmess=VmessOptions(alter_id=4, security="aes-128-gcm"))
        )
        assert (client.alter_id, client.security) == (4, "aes-128-gcm")

    def test_trojan_password(self):
        client = build_client(inbound("trojan"), MassClientRequest())
        assert isinstance(client, TrojanClient)
        assert validate_uuid(client.password)

        client = build_client(inbound("trojan"), MassClientRequest(trojan=TrojanOptions(password="pw")))
        assert client.password == "pw"

    def test_shadowsocks_identity_is_email(self):
        client = build_client(
            inbound("shadowsocks"),
            MassClientRequest(shadowsocks=ShadowsocksOptions(password="p"))
        )

        assert isinstance(client, ShadowsocksClient)
        assert client.id == client.email
        assert client.method == "aes-256-gcm"
        assert client.password == "p"
        assert "id" not in client.to_dict()

    def test_unknown_protocol_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            build_client(inbound("dokodemo-door"), MassClientRequest())
        assert exc_info.value.field == "protocol"

    def test_limits_and_expiry(self):
        request = MassClientRequest(
            limit_ip=5,
            traffic=TrafficConfig(size=10, unit="GB"),
            expiry_days=30,
            enable=False,
            reset=7
        )
        client = build_client(inbound("vless"), request)

        assert client.limit_ip == 5
        assert client.total_gb == 10 * 1024 ** 3
        assert client.expiry_time > 0
        assert client.enable is False
        assert client.reset == 7

    def test_unlimited_maps_to_zero(self):
        request = MassClientRequest(limit_ip="unlimited", traffic="unlimited", expiry_days="unlimited")
        client = build_client(inbound("vless"), request)

        assert (client.limit_ip, client.total_gb, client.expiry_time) == (0, 0, 0)

    def test_explicit_zero_limit_kept(self):
        client = build_client(inbound("vless"), MassClientRequest(limit_ip=0))
        assert client.limit_ip == 0

    def test_emails_differ(self):
        emails = {build_client(inbound("vless"), MassClientRequest()).email for _ in range(20)}
        assert len(emails) == 20


class TestClientKey:

    def test_keys_by_protocol(self):
        vmess = VmessClient(id="uuid-1", email="a")
        vless = VlessClient(id="uuid-2", email="b")
        trojan = TrojanClient(id="uuid-3", email="c", password="pw")
        ss = ShadowsocksClient(id="d", email="d", password="x")

        assert client_key(vmess, "vmess") == "uuid-1"
        assert client_key(vless, Protocol.VLESS) == "uuid-2"
        assert client_key(trojan, "trojan") == "pw"
        assert client_key(ss, "shadowsocks") == "d"

    def test_unknown_protocol_rejected(self):
        with pytest.raises(ValidationError):
            client_key(VlessClient(id="x"), "socks")


class TestValidateMassRequest:

    @pytest.mark.parametrize("request_", [
        MassClientRequest(),
        MassClientRequest(limit_ip=0, expiry_days=0),
        MassClientRequest(limit_ip="unlimited", traffic="unlimited", expiry_days="unlimited"),
        MassClientRequest(traffic=TrafficConfig(size=0.5, unit="TB")),
        MassClientRequest(traffic=TrafficConfig(size=0, unlimited=True)),
    ])
    def test_valid(self, request_):
        validate_mass_request(request_)

    @pytest.mark.parametrize("request_, field", [
        (MassClientRequest(limit_ip=-1), "limit_ip"),
        (MassClientRequest(limit_ip=1.5), "limit_ip"),
        (MassClientRequest(limit_ip="many"), "limit_ip"),
        (MassClientRequest(expiry_days=-3), "expiry_days"),
        (MassClientRequest(traffic=TrafficConfig(size=0, unit="GB")), "traffic.size"),
        (MassClientRequest(traffic=TrafficConfig(size=-1, unit="GB")), "traffic.size"),
        (MassClientRequest(traffic=TrafficConfig(size=1, unit="PB")), "traffic.unit"),
        (MassClientRequest(traffic=100), "traffic"),
    ])
    def test_invalid(self, request_, field):
        with pytest.raises(ValidationError) as exc_info:
            validate_mass_request(request_)
        assert exc_info.value.field == field
