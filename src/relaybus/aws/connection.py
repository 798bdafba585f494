"""AwsConnectionManager — shared aiobotocore clients and address resolution."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from aiobotocore.session import AioSession

from ..exceptions import FatalTransportError

logger = logging.getLogger("relaybus.transport")


class AwsConnectionManager:
    """Owns one SQS, SNS and STS client and caches resolved addresses.

    Queue URLs are resolved with ``GetQueueUrl`` (passing the owner account
    for cross-account queues). Topic ARNs are built from the region, the owner
    account and the topic name; the caller's own account is looked up once
    through STS.
    """

    def __init__(
        self,
        region_name: str = "us-east-1",
        *,
        session: AioSession | None = None,
        partition: str = "aws",
        **client_kwargs: Any,
    ) -> None:
        self._region = region_name
        self._session = session or AioSession()
        self._partition = partition
        self._client_kwargs = client_kwargs
        self._clients: dict[str, Any] = {}
        self._client_cms: dict[str, Any] = {}
        self._client_locks: dict[str, asyncio.Lock] = {}
        self._queue_urls: dict[tuple[str | None, str], str] = {}
        self._account_id: str | None = None

    @property
    def region_name(self) -> str:
        return self._region

    async def get_client(self, service: str) -> Any:
        """Return the shared client for *service*; create it if needed.

        Concurrent callers for the same service wait on one creation.
        """
        client = self._clients.get(service)
        if client is not None:
            return client
        async with self._client_locks.setdefault(service, asyncio.Lock()):
            client = self._clients.get(service)
            if client is None:
                cm = self._session.create_client(
                    service,
                    region_name=self._region,
                    **self._client_kwargs,
                )
                client = await cm.__aenter__()
                self._client_cms[service] = cm
                self._clients[service] = client
        return client

    async def get_queue_url(self, queue_name: str, account: str | None = None) -> str:
        """Resolve a queue name (optionally owned by *account*) to its URL."""
        key = (account, queue_name)
        cached = self._queue_urls.get(key)
        if cached is not None:
            return cached
        client = await self.get_client("sqs")
        request: dict[str, Any] = {"QueueName": queue_name}
        if account:
            request["QueueOwnerAWSAccountId"] = account
        try:
            out = await client.get_queue_url(**request)
        except Exception as e:
            err = getattr(e, "response", {}) or {}
            code = err.get("Error", {}).get("Code")
            if code in (
                "AWS.SimpleQueueService.NonExistentQueue",
                "QueueDoesNotExist",
            ):
                raise FatalTransportError(
                    f"Queue {queue_name!r} does not exist", code=code
                ) from e
            raise
        url = str(out["QueueUrl"])
        self._queue_urls[key] = url
        return url

    async def get_account_id(self) -> str:
        if self._account_id is None:
            client = await self.get_client("sts")
            out = await client.get_caller_identity()
            self._account_id = str(out["Account"])
        return self._account_id

    async def get_topic_arn(self, topic_name: str, account: str | None = None) -> str:
        owner = account or await self.get_account_id()
        return f"arn:{self._partition}:sns:{self._region}:{owner}:{topic_name}"

    async def close(self) -> None:
        """Close every open client."""
        for service, cm in list(self._client_cms.items()):
            await cm.__aexit__(None, None, None)
            logger.debug("Closed %s client", service)
        self._client_cms.clear()
        self._clients.clear()

    async def health_check(self) -> bool:
        """Return True if we can list queues (lightweight check)."""
        try:
            client = await self.get_client("sqs")
            await client.list_queues(MaxResults=1)
            return True
        except Exception as e:  # noqa: BLE001
            logger.warning("SQS health check failed: %s", e)
            return False
