"""Serialização de valores de cache usando MsgPack."""

from typing import Any

import msgpack

from .exceptions import CacheSerializationError


class MsgPackSerializer:
    """Serializer usando MessagePack.

    Suporta tipos Python nativos:
    - None, bool, int, float, str, bytes
    - list, tuple (lida de volta como list), dict com chaves não-string
    - datetime com timezone (via timestamp extension)
    """

    def serialize(self, data: Any) -> bytes:
        """Serializa dados Python para bytes MsgPack.

        Raises:
            CacheSerializationError: Se falhar ao serializar
        """
        try:
            result = msgpack.packb(data, use_bin_type=True, datetime=True)
            if result is None:
                raise CacheSerializationError("msgpack.packb retornou None")
            return result
        except (TypeError, ValueError, OverflowError) as e:
            raise CacheSerializationError(f"Falha ao serializar dados: {e}") from e

    def deserialize(self, data: bytes) -> Any:
        """Deserializa bytes MsgPack para dados Python.

        Raises:
            CacheSerializationError: Se falhar ao deserializar
        """
        try:
            return msgpack.unpackb(data, raw=False, timestamp=3, strict_map_key=False)
        except (msgpack.UnpackException, ValueError) as e:
            raise CacheSerializationError(f"Falha ao deserializar dados: {e}") from e
