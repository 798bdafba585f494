"""Unit tests for AwsConnectionManager with mocked aiobotocore (no real AWS)."""

from __future__ import annotations

import asyncio
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from relaybus.aws import AwsConnectionManager
from relaybus.exceptions import FatalTransportError

QUEUE_URL = "https://sqs.eu-west-1.amazonaws.com/123456789012/orders"


@pytest.fixture
def mock_session() -> MagicMock:
    session = MagicMock()
    mock_cm = MagicMock()
    mock_client = MagicMock()
    mock_client.get_queue_url = AsyncMock(return_value={"QueueUrl": QUEUE_URL})
    mock_client.get_caller_identity = AsyncMock(
        return_value={"Account": "123456789012"}
    )
    mock_client.list_queues = AsyncMock(return_value={"QueueUrls": []})
    mock_cm.__aenter__ = AsyncMock(return_value=mock_client)
    mock_cm.__aexit__ = AsyncMock(return_value=None)
    session.create_client = MagicMock(return_value=mock_cm)
    return session


@pytest.mark.asyncio
async def test_get_client_creates_one_client_per_service(
    mock_session: MagicMock,
) -> None:
    conn = AwsConnectionManager("eu-west-1", session=mock_session)

    sqs1 = await conn.get_client("sqs")
    sqs2 = await conn.get_client("sqs")
    await conn.get_client("sns")

    assert sqs1 is sqs2
    services = [c.args[0] for c in mock_session.create_client.call_args_list]
    assert services == ["sqs", "sns"]
    assert mock_session.create_client.call_args.kwargs["region_name"] == "eu-west-1"


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_client(mock_session: MagicMock) -> None:
    mock_cm = mock_session.create_client.return_value
    client = mock_cm.__aenter__.return_value

    async def slow_enter(*args: Any) -> Any:
        await asyncio.sleep(0.01)
        return client

    mock_cm.__aenter__ = AsyncMock(side_effect=slow_enter)
    conn = AwsConnectionManager(session=mock_session)

    first, second = await asyncio.gather(
        conn.get_client("sqs"), conn.get_client("sqs")
    )
    await conn.close()

    assert first is second
    mock_session.create_client.assert_called_once()
    assert mock_cm.__aexit__.call_count == 1


@pytest.mark.asyncio
async def test_client_kwargs_are_passed_through(mock_session: MagicMock) -> None:
    conn = AwsConnectionManager(
        session=mock_session, endpoint_url="http://localhost:4566"
    )
    await conn.get_client("sqs")

    kwargs = mock_session.create_client.call_args.kwargs
    assert kwargs["endpoint_url"] == "http://localhost:4566"


@pytest.mark.asyncio
async def test_get_queue_url_is_cached(mock_session: MagicMock) -> None:
    conn = AwsConnectionManager(session=mock_session)

    assert await conn.get_queue_url("orders") == QUEUE_URL
    assert await conn.get_queue_url("orders") == QUEUE_URL

    client = await conn.get_client("sqs")
    client.get_queue_url.assert_called_once_with(QueueName="orders")


@pytest.mark.asyncio
async def test_get_queue_url_for_other_account(mock_session: MagicMock) -> None:
    conn = AwsConnectionManager(session=mock_session)

    await conn.get_queue_url("orders", "210987654321")

    client = await conn.get_client("sqs")
    client.get_queue_url.assert_called_once_with(
        QueueName="orders", QueueOwnerAWSAccountId="210987654321"
    )


@pytest.mark.asyncio
async def test_missing_queue_is_fatal(mock_session: MagicMock) -> None:
    client = mock_session.create_client.return_value.__aenter__.return_value
    err_response = {"Error": {"Code": "AWS.SimpleQueueService.NonExistentQueue"}}

    class QueueNotFound(Exception):  # noqa: N818
        response = err_response

    client.get_queue_url = AsyncMock(side_effect=QueueNotFound())
    conn = AwsConnectionManager(session=mock_session)

    with pytest.raises(FatalTransportError) as exc_info:
        await conn.get_queue_url("orders")
    assert exc_info.value.code == "AWS.SimpleQueueService.NonExistentQueue"
    assert not exc_info.value.retryable


@pytest.mark.asyncio
async def test_other_queue_url_errors_propagate(mock_session: MagicMock) -> None:
    client = mock_session.create_client.return_value.__aenter__.return_value
    client.get_queue_url = AsyncMock(side_effect=RuntimeError("network error"))
    conn = AwsConnectionManager(session=mock_session)

    with pytest.raises(RuntimeError, match="network error"):
        await conn.get_queue_url("orders")


@pytest.mark.asyncio
async def test_topic_arn_uses_own_account_by_default(
    mock_session: MagicMock,
) -> None:
    conn = AwsConnectionManager("eu-west-1", session=mock_session)

    own = await conn.get_topic_arn("order-events")
    other = await conn.get_topic_arn("order-events", "210987654321")
    await conn.get_topic_arn("other-events")

    assert own == "arn:aws:sns:eu-west-1:123456789012:order-events"
    assert other == "arn:aws:sns:eu-west-1:210987654321:order-events"
    client = await conn.get_client("sts")
    client.get_caller_identity.assert_called_once()


@pytest.mark.asyncio
async def test_close_exits_every_client(mock_session: MagicMock) -> None:
    mock_cm = mock_session.create_client.return_value
    conn = AwsConnectionManager(session=mock_session)
    await conn.get_client("sqs")
    await conn.get_client("sns")

    await conn.close()
    await conn.close()

    assert mock_cm.__aexit__.call_count == 2


@pytest.mark.asyncio
async def test_health_check(mock_session: MagicMock) -> None:
    conn = AwsConnectionManager(session=mock_session)
    assert await conn.health_check() is True

    client = await conn.get_client("sqs")
    client.list_queues.assert_called_once_with(MaxResults=1)
    client.list_queues = AsyncMock(side_effect=RuntimeError("timeout"))
    assert await conn.health_check() is False
