"""StatisticsClient encodes commands in the decoder's grammar."""

import pytest

from spider_stats.aggregation.client import StatisticsClient, encode_command
from spider_stats.aggregation.decoder import decode_message
from spider_stats.bus.memory_bus import MemoryEventBus
from spider_stats.core.commands import (
    RecordDownloadFailed,
    RecordDownloadSuccess,
    RecordExit,
    RecordFailed,
    RecordStart,
    RecordSuccess,
    RecordTotal,
    RequestSnapshot,
)

TOPIC = "statistics-service"


class TestEncodeCommand:
    def test_single_field(self):
        message = encode_command(RecordSuccess("spider-1"))
        assert message.kind == "Success"
        assert message.payload == "spider-1"

    def test_count_field(self):
        message = encode_command(RecordFailed("spider-1", 3))
        assert message.kind == "Failed"
        assert message.payload == "spider-1,3"

    def test_download_fields(self):
        message = encode_command(RecordDownloadFailed("spider-1", 2, 512))
        assert message.kind == "DownloadFailed"
        assert message.payload == "spider-1,2,512"

    @pytest.mark.parametrize(
        "command",
        [
            RecordSuccess("a"),
            RecordStart("a"),
            RecordExit("a"),
            RequestSnapshot("a"),
            RecordTotal("a", 10),
            RecordDownloadSuccess("a", 4, 4096),
        ],
    )
    def test_decoder_reads_it_back(self, command):
        assert decode_message(encode_command(command)) == command


class TestStatisticsClient:
    @pytest.fixture
    def bus(self):
        return MemoryEventBus()

    async def test_publishes_on_topic(self, bus):
        received = []

        async def handler(message):
            received.append(message)

        await bus.subscribe(TOPIC, "test", handler)
        client = StatisticsClient(bus, topic=TOPIC)
        await client.start("spider-1")
        await client.increment_failed("spider-1")
        await client.increment_download_success("spider-1", 1, 2048)

        assert [(m.kind, m.payload) for m in received] == [
            ("Start", "spider-1"),
            ("Failed", "spider-1,1"),
            ("DownloadSuccess", "spider-1,1,2048"),
        ]

    async def test_print_statistics(self, bus):
        client = StatisticsClient(bus, topic=TOPIC)
        await client.print_statistics("spider-1")
        history = bus.get_history(TOPIC)
        topic, message = history[-1]
        assert topic == TOPIC
        assert message.kind == "Print"
