"""
Общие фикстуры тестов: фейковая панель 3x-ui на aiohttp.web
"""
import asyncio
import json
from itertools import count
from typing import Dict, Any, List, Optional

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from xui_panel.api.base_client import XUIClient
from xui_panel.config import ClientConfig

USERNAME = "admin"
PASSWORD = "secret"
COOKIE_NAME = "3x-ui"

API = "/panel/api/inbounds"


def make_inbound(
    inbound_id: int,
    protocol: str,
    clients: List[Dict[str, Any]] = None,
    remark: str = None,
    port: int = None,
    security: str = "none",
    network: str = "tcp",
    enable: bool = True
) -> Dict[str, Any]:
    """Inbound в формате панели: settings и streamSettings - JSON строки"""
    return {
        "id": inbound_id,
        "remark": remark or f"{protocol}-{inbound_id}",
        "protocol": protocol,
        "enable": enable,
        "port": port or 10000 + inbound_id,
        "listen": "",
        "tag": f"inbound-{inbound_id}",
        "up": 100 * inbound_id,
        "down": 200 * inbound_id,
        "total": 0,
        "expiryTime": 0,
        "settings": json.dumps({"clients": clients or []}),
        "streamSettings": json.dumps({"network": network, "security": security}),
    }


def _key(client: Dict[str, Any], protocol: str) -> Optional[str]:
    if protocol in ("vmess", "vless"):
        return client.get("id")
    if protocol == "trojan":
        return client.get("password")
    return client.get("email")


class FakePanel:
    """
    Панель 3x-ui в памяти

    - login выдает cookie '3x-ui=tokN'
    - failures: {path: [status, ...]} - следующие ответы по пути
    - reject_add: ID inbound, на которых addClient отвечает success=false
    - delays: {path: seconds} - задержка ответа по пути
    - expire_sessions() делает все выданные cookie недействительными
    """

    def __init__(self):
        self.inbounds: List[Dict[str, Any]] = []
        self.tokens = set()
        self.login_count = 0
        self.requests: List[str] = []
        self.failures: Dict[str, List[int]] = {}
        self.raw_responses: Dict[str, str] = {}
        self.delays: Dict[str, float] = {}
        self.reject_add = set()
        self.reject_all_cookies = False
        self.online: List[str] = []
        self._token_ids = count(1)

    def expire_sessions(self):
        self.tokens.clear()

    def find(self, inbound_id: int) -> Optional[Dict[str, Any]]:
        for inbound in self.inbounds:
            if inbound["id"] == inbound_id:
                return inbound
        return None

    def clients_of(self, inbound_id: int) -> List[Dict[str, Any]]:
        return json.loads(self.find(inbound_id)["settings"])["clients"]

    def _store_clients(self, inbound: Dict[str, Any], clients: List[Dict[str, Any]]):
        inbound["settings"] = json.dumps({"clients": clients})

    def app(self) -> web.Application:
        app = web.Application(middlewares=[self._middleware])
        app.router.add_post("/login", self.login)
        app.router.add_get("/", self.index)
        app.router.add_get(f"{API}/list", self.list_inbounds)
        app.router.add_get(f"{API}/get/{{id}}", self.get_inbound)
        app.router.add_post(f"{API}/add", self.add_inbound)
        app.router.add_post(f"{API}/update/{{id}}", self.update_inbound)
        app.router.add_post(f"{API}/del/{{id}}", self.delete_inbound)
        app.router.add_post(f"{API}/addClient", self.add_client)
        app.router.add_post(f"{API}/{{id}}/delClient/{{key}}", self.delete_client)
        app.router.add_post(f"{API}/updateClient/{{key}}", self.update_client)
        app.router.add_get(f"{API}/getClientTraffics/{{email}}", self.client_traffic)
        app.router.add_post(f"{API}/{{id}}/resetClientTraffic/{{email}}", self.ok)
        app.router.add_post(f"{API}/resetAllTraffics", self.ok)
        app.router.add_post(f"{API}/resetAllClientTraffics/{{id}}", self.ok)
        app.router.add_post(f"{API}/delDepletedClients/{{id}}", self.ok)
        app.router.add_post(f"{API}/onlines", self.onlines)
        app.router.add_post(f"{API}/clientIps/{{email}}", self.client_ips)
        app.router.add_post(f"{API}/clearClientIps/{{email}}", self.ok)
        app.router.add_get(f"{API}/createbackup", self.ok)
        return app

    @web.middleware
    async def _middleware(self, request: web.Request, handler):
        self.requests.append(f"{request.method} {request.path}")

        if request.path in self.delays:
            await asyncio.sleep(self.delays[request.path])

        scripted = self.failures.get(request.path)
        if scripted:
            status = scripted.pop(0)
            return web.json_response({"success": False, "msg": f"scripted {status}"}, status=status)

        if request.path in self.raw_responses:
            return web.Response(text=self.raw_responses[request.path], content_type="application/json")

        if request.path.startswith(API):
            token = request.cookies.get(COOKIE_NAME)
            if self.reject_all_cookies or token not in self.tokens:
                return web.Response(status=401, text="Unauthorized")

        return await handler(request)

    async def login(self, request: web.Request) -> web.Response:
        form = await request.post()
        if form.get("username") != USERNAME or form.get("password") != PASSWORD:
            return web.json_response({"success": False, "msg": "Неверный логин или пароль"})

        self.login_count += 1
        token = f"tok{next(self._token_ids)}"
        self.tokens.add(token)
        response = web.json_response({"success": True, "msg": "Login Successfully"})
        response.set_cookie(COOKIE_NAME, token)
        return response

    async def index(self, request: web.Request) -> web.Response:
        return web.Response(text="<html></html>", content_type="text/html")

    async def ok(self, request: web.Request) -> web.Response:
        return web.json_response({"success": True, "msg": "", "obj": None})

    async def list_inbounds(self, request: web.Request) -> web.Response:
        return web.json_response({"success": True, "msg": "", "obj": self.inbounds})

    async def get_inbound(self, request: web.Request) -> web.Response:
        inbound = self.find(int(request.match_info["id"]))
        if inbound is None:
            return web.json_response({"success": False, "msg": "record not found", "obj": None})
        return web.json_response({"success": True, "msg": "", "obj": inbound})

    async def add_inbound(self, request: web.Request) -> web.Response:
        data = await request.json()
        data["id"] = max((inbound["id"] for inbound in self.inbounds), default=0) + 1
        self.inbounds.append(data)
        return web.json_response({"success": True, "msg": "Create Successfully", "obj": data})

    async def update_inbound(self, request: web.Request) -> web.Response:
        inbound = self.find(int(request.match_info["id"]))
        if inbound is None:
            return web.json_response({"success": False, "msg": "record not found"})
        inbound.update(await request.json())
        return web.json_response({"success": True, "msg": "Update Successfully", "obj": inbound})

    async def delete_inbound(self, request: web.Request) -> web.Response:
        inbound = self.find(int(request.match_info["id"]))
        if inbound is None:
            return web.json_response({"success": False, "msg": "record not found"})
        self.inbounds.remove(inbound)
        return web.json_response({"success": True, "msg": "Delete Successfully"})

    async def add_client(self, request: web.Request) -> web.Response:
        data = await request.json()
        inbound = self.find(data["id"])
        if inbound is None:
            return web.json_response({"success": False, "msg": "record not found"})
        if data["id"] in self.reject_add:
            return web.json_response({"success": False, "msg": "Duplicate email"})

        new_clients = json.loads(data["settings"])["clients"]
        self._store_clients(inbound, self.clients_of(inbound["id"]) + new_clients)
        return web.json_response({"success": True, "msg": "Client(s) added"})

    async def delete_client(self, request: web.Request) -> web.Response:
        inbound = self.find(int(request.match_info["id"]))
        key = request.match_info["key"]
        if inbound is None:
            return web.json_response({"success": False, "msg": "record not found"})

        clients = self.clients_of(inbound["id"])
        remaining = [c for c in clients if _key(c, inbound["protocol"]) != key]
        if len(remaining) == len(clients):
            return web.json_response({"success": False, "msg": "Client not found"})

        self._store_clients(inbound, remaining)
        return web.json_response({"success": True, "msg": "Client deleted"})

    async def update_client(self, request: web.Request) -> web.Response:
        data = await request.json()
        inbound = self.find(data["id"])
        key = request.match_info["key"]
        updated = json.loads(data["settings"])["clients"][0]

        clients = [
            updated if _key(c, inbound["protocol"]) == key else c
            for c in self.clients_of(inbound["id"])
        ]
        self._store_clients(inbound, clients)
        return web.json_response({"success": True, "msg": "Client updated"})

    async def client_traffic(self, request: web.Request) -> web.Response:
        email = request.match_info["email"]
        for inbound in self.inbounds:
            for client in json.loads(inbound["settings"])["clients"]:
                if client.get("email") == email:
                    return web.json_response({"success": True, "obj": {
                        "id": 1,
                        "inboundId": inbound["id"],
                        "enable": client.get("enable", True),
                        "email": email,
                        "up": 1024,
                        "down": 2048,
                        "expiryTime": client.get("expiryTime", 0),
                        "total": client.get("totalGB", 0),
                        "reset": 0,
                    }})
        return web.json_response({"success": True, "obj": None})

    async def onlines(self, request: web.Request) -> web.Response:
        return web.json_response({"success": True, "obj": self.online})

    async def client_ips(self, request: web.Request) -> web.Response:
        return web.json_response({"success": True, "obj": ["10.0.0.1", "10.0.0.2"]})


@pytest.fixture
def panel() -> FakePanel:
    return FakePanel()


@pytest.fixture
async def panel_url(panel):
    server = TestServer(panel.app())
    await server.start_server()
    yield str(server.make_url(""))
    await server.close()


@pytest.fixture
async def make_client(panel_url):
    """Фабрика XUIClient для фейковой панели без задержек retry"""
    created = []

    def factory(**options) -> XUIClient:
        params = dict(
            base_url=panel_url,
            username=USERNAME,
            password=PASSWORD,
            timeout=5.0,
            retry_attempts=2,
            retry_delay=0.0,
        )
        params.update(options)
        client = XUIClient(ClientConfig(**params))
        client.retry_policy.config.max_jitter = 0
        created.append(client)
        return client

    yield factory

    for client in created:
        await client.close()


@pytest.fixture
def client(make_client) -> XUIClient:
    return make_client()
