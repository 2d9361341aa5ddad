"""
JSON (de)serialization of message payloads.
"""

import json
from typing import Any


def encode_payload(content: Any) -> bytes:
    """
    Сериализует сообщение в тело AMQP.

    ``bytes`` pass through untouched, everything else is JSON encoded.

    :raises TypeError: если объект не сериализуется в JSON
    """
    if isinstance(content, (bytes, bytearray)):
        return bytes(content)
    return json.dumps(content, ensure_ascii=False).encode("utf-8")


def decode_payload(body: bytes) -> Any:
    """
    Декодирует тело сообщения. Never raises.

    Valid JSON decodes to its value, any other UTF-8 text is returned as ``str``
    and undecodable bytes are returned as they are.
    """
    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError:
        return body
    try:
        return json.loads(text)
    except (ValueError, RecursionError):
        # malformed or too deeply nested for the decoder
        return text
