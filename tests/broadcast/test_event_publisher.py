import json
from unittest.mock import AsyncMock, Mock

import pytest
from redis.exceptions import ConnectionError

from ridesync.broadcast import TRIP_UPDATES_CHANNEL, BroadcastEvent, NoopEventPublisher, RedisEventPublisher


@pytest.fixture
def event():
    return BroadcastEvent(type="TRIP_ACCEPTED", payload={"id": "t1"}, timestamp=1)


@pytest.mark.unit
class TestRedisEventPublisher:
    @pytest.mark.asyncio
    async def test_publishes_json_on_trip_updates(self, event):
        client = Mock()
        client.publish = AsyncMock()
        publisher = RedisEventPublisher(client)

        await publisher.publish(event)

        channel, message = client.publish.await_args.args
        assert channel == TRIP_UPDATES_CHANNEL
        assert json.loads(message)["eventId"] == event.event_id

    @pytest.mark.asyncio
    async def test_connection_errors_are_logged_not_raised(self, event, caplog):
        client = Mock()
        client.publish = AsyncMock(side_effect=ConnectionError("refused"))

        await RedisEventPublisher(client).publish(event)

        assert "Failed to publish" in caplog.text

    @pytest.mark.asyncio
    async def test_close(self):
        client = Mock()
        client.aclose = AsyncMock()
        await RedisEventPublisher(client).close()
        client.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_noop(self, event):
        await NoopEventPublisher().publish(event)
