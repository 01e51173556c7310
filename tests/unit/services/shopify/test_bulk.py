import pytest
from unittest.mock import AsyncMock

from stocklink.core.exceptions import BulkOperationFailed, BulkOperationTimeout, BulkSubmitRejected
from stocklink.services.shopify.bulk import INVENTORY_LEVELS_QUERY, BulkJobPoller

OP_ID = "gid://shopify/BulkOperation/1"


def status(value, **extra):
    return {"id": OP_ID, "status": value, **extra}


@pytest.fixture
def client():
    client = AsyncMock()
    client.run_bulk_query.return_value = {"bulkOperation": {"id": OP_ID, "status": "CREATED"}, "userErrors": []}
    return client


@pytest.fixture
def sleep():
    return AsyncMock()


@pytest.mark.asyncio
async def test_submit_returns_operation_id(client, sleep):
    poller = BulkJobPoller(client, sleep=sleep)

    assert await poller.submit(INVENTORY_LEVELS_QUERY) == OP_ID
    client.run_bulk_query.assert_awaited_once_with(INVENTORY_LEVELS_QUERY)


@pytest.mark.asyncio
async def test_submit_rejected_on_user_errors(client, sleep):
    client.run_bulk_query.return_value = {
        "bulkOperation": None,
        "userErrors": [{"field": ["query"], "message": "A bulk query operation is already in progress"}],
    }

    with pytest.raises(BulkSubmitRejected) as exc_info:
        await BulkJobPoller(client, sleep=sleep).submit(INVENTORY_LEVELS_QUERY)
    assert "already in progress" in str(exc_info.value)
    assert exc_info.value.user_errors[0]["field"] == ["query"]


@pytest.mark.asyncio
async def test_submit_rejected_when_not_created(client, sleep):
    client.run_bulk_query.return_value = {"bulkOperation": {"id": OP_ID, "status": "FAILED"}, "userErrors": []}

    with pytest.raises(BulkSubmitRejected):
        await BulkJobPoller(client, sleep=sleep).submit(INVENTORY_LEVELS_QUERY)


@pytest.mark.asyncio
async def test_poll_returns_url_once_completed(client, sleep):
    client.get_bulk_operation.side_effect = [
        status("CREATED"),
        status("RUNNING"),
        status("COMPLETED", url="https://storage/result.jsonl", objectCount="12"),
    ]
    poller = BulkJobPoller(client, max_attempts=12, interval=20, sleep=sleep)

    url = await poller.poll_until_ready(OP_ID)

    assert url == "https://storage/result.jsonl"
    assert client.get_bulk_operation.await_count == 3
    assert sleep.await_count == 2
    sleep.assert_awaited_with(20)


@pytest.mark.asyncio
async def test_completed_without_url_is_empty_snapshot(client, sleep):
    client.get_bulk_operation.return_value = status("COMPLETED", url=None, objectCount="0")

    assert await BulkJobPoller(client, sleep=sleep).poll_until_ready(OP_ID) is None


@pytest.mark.asyncio
async def test_timeout_after_last_poll_without_completion(client, sleep):
    client.get_bulk_operation.return_value = status(
        "RUNNING", partialDataUrl="https://storage/partial.jsonl"
    )
    poller = BulkJobPoller(client, max_attempts=12, interval=20, sleep=sleep)

    with pytest.raises(BulkOperationTimeout) as exc_info:
        await poller.poll_until_ready(OP_ID)

    assert client.get_bulk_operation.await_count == 12
    assert sleep.await_count == 11
    assert exc_info.value.attempts == 12


@pytest.mark.asyncio
async def test_failed_operation_raises_with_error_code(client, sleep):
    client.get_bulk_operation.side_effect = [
        status("RUNNING"),
        status("FAILED", errorCode="ACCESS_DENIED"),
    ]

    with pytest.raises(BulkOperationFailed) as exc_info:
        await BulkJobPoller(client, sleep=sleep).poll_until_ready(OP_ID)

    assert exc_info.value.error_code == "ACCESS_DENIED"
    assert exc_info.value.status == "FAILED"


@pytest.mark.asyncio
async def test_canceled_operation_is_a_failure(client, sleep):
    client.get_bulk_operation.return_value = status("CANCELED")

    with pytest.raises(BulkOperationFailed):
        await BulkJobPoller(client, sleep=sleep).poll_until_ready(OP_ID)
    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_run_submits_then_polls(client, sleep):
    client.get_bulk_operation.return_value = status("COMPLETED", url="https://storage/r.jsonl")

    assert await BulkJobPoller(client, sleep=sleep).run(INVENTORY_LEVELS_QUERY) == "https://storage/r.jsonl"


@pytest.mark.asyncio
async def test_zero_attempts_is_respected(client, sleep):
    poller = BulkJobPoller(client, max_attempts=12, sleep=sleep)

    with pytest.raises(BulkOperationTimeout):
        await poller.poll_until_ready(OP_ID, max_attempts=0)

    client.get_bulk_operation.assert_not_awaited()
