# codec.py
import base64
import binascii
import json

from models import DecodeError, Status, command_class


def encode(command):
    """Serialize a command's kind and payload to storage-safe bytes.

    Id and status are not part of the encoding; the store row carries them.
    """
    if command.kind is None:
        raise TypeError(f"{type(command).__name__} is not a registered command kind")
    document = {"kind": command.kind, "payload": command.payload()}
    raw = json.dumps(document, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return base64.b64encode(raw)


def decode(data, command_id=0, status=Status.PENDING):
    if isinstance(data, str):
        data = data.encode("ascii", errors="replace")
    try:
        raw = base64.b64decode(data, validate=True)
        document = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        raise DecodeError(f"malformed command bytes: {e}") from e

    if not isinstance(document, dict) or "kind" not in document or "payload" not in document:
        raise DecodeError("command document must have 'kind' and 'payload'")
    payload = document["payload"]
    if not isinstance(payload, dict):
        raise DecodeError("command payload must be an object")
    if not isinstance(document["kind"], str):
        raise DecodeError("command kind must be a string")

    cls = command_class(document["kind"])
    try:
        return cls(**payload, id=command_id, status=Status(status))
    except (TypeError, ValueError) as e:
        raise DecodeError(f"payload does not fit kind {document['kind']!r}: {e}") from e


def describe(data):
    """Human-readable summary of stored bytes, for listings."""
    try:
        return decode(data).describe()
    except DecodeError as e:
        return f"<undecodable: {e}>"
