"""Shared test fixtures and test-only command kinds."""

from dataclasses import dataclass

import pytest

import documents  # noqa: F401
import scraping
from models import Command, WorkFailed, register_command
from storage import Storage

EXECUTED = []


@register_command("test_record")
@dataclass
class RecordCommand(Command):
    name: str

    def execute(self):
        EXECUTED.append(self.name)
        return []


@register_command("test_list")
@dataclass
class ListCommand(Command):
    name: str
    children: int = 2

    def execute(self):
        EXECUTED.append(self.name)
        return [RecordCommand(f"{self.name}/detail-{i}") for i in range(1, self.children + 1)]


@register_command("test_fail")
@dataclass
class FailingCommand(Command):
    name: str

    def execute(self):
        EXECUTED.append(self.name)
        raise WorkFailed(f"{self.name} is unavailable")


@pytest.fixture(autouse=True)
def _reset_state():
    EXECUTED.clear()
    yield
    EXECUTED.clear()
    scraping.set_fetcher(None)


@pytest.fixture()
def executed():
    return EXECUTED


@pytest.fixture()
def db_path(tmp_path):
    return tmp_path / "commands.db"


@pytest.fixture()
def storage(db_path):
    db = Storage(db_path)
    yield db
    db.close()


BLOCKING = {}


@register_command("test_blocking_list")
@dataclass
class BlockingListCommand(ListCommand):
    """Waits for ``BLOCKING["release"]`` while executing."""

    def execute(self):
        BLOCKING["started"].set()
        if not BLOCKING["release"].wait(timeout=5):
            raise WorkFailed(f"{self.name} was never released")
        return super().execute()
