# models.py
from dataclasses import dataclass, field, fields
from enum import IntEnum


class Status(IntEnum):
    PENDING = 0
    COMPLETE = 1


# ---------------- Errors ----------------
class QueueError(Exception):
    """Base class for command queue errors."""


class DecodeError(QueueError):
    """Stored bytes could not be turned back into a command."""


class WorkFailed(QueueError):
    """The action behind a command failed; the row stays pending."""


class NotFound(QueueError):
    """No pending row with the given id."""


class StorageError(QueueError):
    """The underlying database failed."""


# ---------------- Kind registry ----------------
_REGISTRY = {}


def register_command(kind):
    """Class decorator mapping ``kind`` to a concrete Command class."""
    def decorator(cls):
        existing = _REGISTRY.get(kind)
        if existing is not None and existing is not cls:
            raise ValueError(f"kind {kind!r} already registered to {existing.__name__}")
        cls.kind = kind
        _REGISTRY[kind] = cls
        return cls
    return decorator


def command_class(kind):
    try:
        return _REGISTRY[kind]
    except KeyError:
        raise DecodeError(f"unknown command kind {kind!r}") from None


def registered_kinds():
    return sorted(_REGISTRY)


# ---------------- Command contract ----------------
@dataclass
class Command:
    """A persisted unit of work.

    ``id`` and ``status`` belong to the store row; every other dataclass
    field is payload. ``execute`` returns the follow-up commands to enqueue;
    returning normally is what lets the worker mark the row complete.
    """

    kind = None

    id: int = field(default=0, kw_only=True)
    status: Status = field(default=Status.PENDING, kw_only=True)

    def execute(self):
        raise NotImplementedError

    def identify(self):
        return self.id

    def report_status(self):
        return self.status

    def mark_complete(self):
        self.status = Status.COMPLETE

    def payload(self):
        return {f.name: getattr(self, f.name) for f in fields(self) if f.name not in ("id", "status")}

    def describe(self):
        args = ", ".join(f"{k}={v!r}" for k, v in self.payload().items())
        return f"{self.kind}({args})"
