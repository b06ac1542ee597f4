"""
Подписки: группировка клиентов с общим subId и массовые операции

Подписка не хранится отдельно: она каждый раз строится из списка inbound.
Массовые операции выполняются последовательно, сбой на одном inbound
записывается в результат и не прерывает обработку остальных.
"""
import logging
from dataclasses import replace
from typing import Optional, List, Iterable

from xui_panel.api.base_client import XUIClient
from xui_panel.api.client_factory import build_client, client_key, validate_mass_request
from xui_panel.api.clients import ClientManager
from xui_panel.api.inbounds import InboundManager
from xui_panel.errors import ValidationError, add_context
from xui_panel.models import (
    DeletionResult,
    Inbound,
    InboundResult,
    MassClientRequest,
    MassOperationResult,
    Subscription,
    SubscriptionMember,
)
from xui_panel.utils.helpers import generate_uuid
from xui_panel.utils.validators import require_non_empty

logger = logging.getLogger(__name__)


def group_subscriptions(inbounds: Iterable[Inbound]) -> List[Subscription]:
    """
    Сгруппировать клиентов inbound по subId

    Порядок групп и клиентов соответствует порядку inbound и клиентов в них.
    Inbound с некорректными settings пропускается с предупреждением.
    """
    groups = {}

    for inbound in inbounds:
        try:
            clients = inbound.get_clients()
        except (TypeError, ValueError) as e:
            logger.warning(f"Failed to parse settings for inbound {inbound.id}: {e}")
            continue

        for client in clients:
            if not client.sub_id:
                continue

            subscription = groups.get(client.sub_id)
            if subscription is None:
                subscription = groups[client.sub_id] = Subscription(sub_id=client.sub_id)

            subscription.clients.append(SubscriptionMember(
                client=client,
                inbound_id=inbound.id,
                inbound_remark=inbound.remark,
                inbound_protocol=inbound.protocol
            ))

    return list(groups.values())


class SubscriptionManager:
    """
    Операции над подписками

    Использование:
        subscriptions = SubscriptionManager(client)
        result = await subscriptions.mass_create(MassClientRequest(limit_ip=3))
        print(result.sub_id, result.success, result.failed)
    """

    def __init__(
        self,
        client: XUIClient,
        inbounds: InboundManager = None,
        clients: ClientManager = None
    ):
        self.client = client
        self.inbounds = inbounds or InboundManager(client)
        self.clients = clients or ClientManager(client)

    async def list_subscriptions(self) -> List[Subscription]:
        """Все подписки панели"""
        try:
            inbounds = await self.inbounds.get_list()
        except Exception as e:
            raise add_context(e, 'Не удалось получить подписки', operation='listSubscriptions')

        return group_subscriptions(inbounds)

    async def get_subscription(self, sub_id: str) -> Optional[Subscription]:
        """Подписка по subId или None"""
        require_non_empty(sub_id, 'sub_id')

        try:
            subscriptions = await self.list_subscriptions()
        except Exception as e:
            raise add_context(
                e,
                f'Не удалось получить подписку {sub_id}',
                operation='getSubscription',
                sub_id=sub_id
            )

        for subscription in subscriptions:
            if subscription.sub_id == sub_id:
                return subscription
        return None

    async def mass_create(
        self,
        request: MassClientRequest,
        inbound_ids: Optional[List[int]] = None
    ) -> MassOperationResult:
        """
        Создать клиента с общим subId на всех или на выбранных inbound

        :param inbound_ids: ID inbound; None - все inbound панели
        :raises ValidationError: некорректный запрос или пустой список inbound_ids
        """
        validate_mass_request(request)

        if inbound_ids is not None and len(inbound_ids) == 0:
            raise ValidationError('Нужен хотя бы один ID inbound', field='inbound_ids', value=inbound_ids)

        # один subId на весь пакет
        request = replace(request, sub_id=request.sub_id or generate_uuid())
        result = MassOperationResult(sub_id=request.sub_id)

        if inbound_ids is None:
            try:
                inbounds = await self.inbounds.get_list()
            except Exception as e:
                raise add_context(
                    e,
                    'Не удалось создать клиентов на всех inbound',
                    operation='massCreate',
                    sub_id=request.sub_id
                )

            for inbound in inbounds:
                result.record(await self._create_on_inbound(inbound, request))
        else:
            for inbound_id in inbound_ids:
                result.record(await self._create_on_inbound_id(inbound_id, request))

        logger.info(
            f"Mass client creation completed for subscription {request.sub_id}: "
            f"{result.success} success, {result.failed} failed"
        )
        return result

    async def _create_on_inbound(self, inbound: Inbound, request: MassClientRequest) -> InboundResult:
        try:
            client = build_client(inbound, request)
            await self.clients.add_client(inbound.id, client)
        except Exception as e:
            logger.warning(f"Failed to create client on inbound {inbound.id} ({inbound.remark}): {e}")
            return InboundResult(inbound.id, inbound.remark, inbound.protocol, success=False, error=str(e))

        logger.info(f"Client {client.email} created on inbound {inbound.id} ({inbound.remark})")
        return InboundResult(inbound.id, inbound.remark, inbound.protocol, success=True)

    async def _create_on_inbound_id(self, inbound_id: int, request: MassClientRequest) -> InboundResult:
        try:
            inbound = await self.inbounds.get_by_id(inbound_id)
        except Exception as e:
            logger.warning(f"Failed to create client on inbound {inbound_id}: {e}")
            return InboundResult(inbound_id, None, None, success=False, error=str(e))

        return await self._create_on_inbound(inbound, request)

    async def delete_by_subscription(self, sub_id: str) -> MassOperationResult:
        """Удалить всех клиентов подписки из всех inbound"""
        require_non_empty(sub_id, 'sub_id')

        subscription = await self.get_subscription(sub_id)
        result = MassOperationResult(sub_id=sub_id)
        if subscription is None:
            return result

        for member in subscription.clients:
            email = member.client.email
            try:
                key = client_key(member.client, member.inbound_protocol)
                await self.clients.delete_client(member.inbound_id, key)
            except Exception as e:
                logger.warning(f"Failed to delete client {email} from inbound {member.inbound_id}: {e}")
                result.record(DeletionResult(member.inbound_id, email, success=False, error=str(e)))
                continue

            logger.info(f"Client {email} deleted from inbound {member.inbound_id}")
            result.record(DeletionResult(member.inbound_id, email, success=True))

        logger.info(
            f"Mass client deletion completed for subscription {sub_id}: "
            f"{result.success} success, {result.failed} failed"
        )
        return result


__all__ = [
    'SubscriptionManager',
    'group_subscriptions',
]
