"""Redis-backed event store: per-account audit streams and an expiring cache."""

from __future__ import annotations

import json

from schemas import IntegrationEvent

from .supervisor import SupervisedRedis


class RedisEventStore:
    """Durable append keyed by account id, plus ``get``/``set`` with TTL.

    The cache side is what the integration handler uses to remember which
    domain events it has already delivered.
    """

    def __init__(self, connection: SupervisedRedis, *, key_prefix: str) -> None:
        self._connection = connection
        self._key_prefix = key_prefix

    def _stream(self, entity_id: str) -> str:
        return f"{self._key_prefix}:entity:{entity_id}"

    def save(self, entity_id: str, event: IntegrationEvent) -> None:
        fields = {"subject": event.subject, "data": json.dumps(event.data, sort_keys=True)}
        stream = self._stream(entity_id)
        self._connection.execute(lambda client: client.xadd(stream, fields))

    def history(self, entity_id: str) -> list[IntegrationEvent]:
        stream = self._stream(entity_id)
        entries = self._connection.execute(lambda client: client.xrange(stream))
        return [
            IntegrationEvent(subject=_text(fields["subject"]), data=json.loads(_text(fields["data"])))
            for _entry_id, fields in _decode_keys(entries)
        ]

    def get(self, key: str) -> str | None:
        value = self._connection.execute(lambda client: client.get(key))
        return None if value is None else _text(value)

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._connection.execute(lambda client: client.set(key, value, ex=ttl_seconds))


def _text(value: str | bytes) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else value


def _decode_keys(entries: list) -> list[tuple[str, dict[str, str | bytes]]]:
    # clients created without decode_responses hand back bytes keys
    return [(_text(entry_id), {_text(k): v for k, v in fields.items()}) for entry_id, fields in entries]
