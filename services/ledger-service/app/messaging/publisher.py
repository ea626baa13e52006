"""Integration event publisher backed by Redis Streams."""

from __future__ import annotations

import json

from schemas import IntegrationEvent

from .supervisor import SupervisedRedis


class RedisStreamPublisher:
    """Appends each envelope to the stream named after its subject.

    Consumers subscribe per routing key: ``<prefix>:account.deposited`` and
    so on. Streams are trimmed approximately to ``maxlen`` entries.
    """

    def __init__(self, connection: SupervisedRedis, *, stream_prefix: str, maxlen: int = 100_000) -> None:
        self._connection = connection
        self._stream_prefix = stream_prefix
        self._maxlen = maxlen

    def stream_for(self, subject: str) -> str:
        return f"{self._stream_prefix}:{subject}"

    def publish(self, event: IntegrationEvent) -> None:
        fields = {"subject": event.subject, "data": json.dumps(event.data, sort_keys=True)}
        stream = self.stream_for(event.subject)
        self._connection.execute(
            lambda client: client.xadd(stream, fields, maxlen=self._maxlen, approximate=True)
        )
