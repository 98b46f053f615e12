import pytest

from credit_calculator.storage import LocalStore


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def store(tmp_path):
    return LocalStore(tmp_path / "device")


class FakeRemote:
    """Records calls. `fail` is a bool or a callable (op_type, document) -> bool."""

    enabled = True

    def __init__(self, fail=False, reachable=True):
        self.fail = fail
        self.reachable = reachable
        self.calls = []
        self.records = {}

    def _reject(self, op_type, document):
        if callable(self.fail):
            return self.fail(op_type, document)
        return self.fail

    async def upsert(self, key, document):
        self.calls.append(("upsert", key, document))
        if self._reject("upsert", document):
            return False
        self.records[key] = document
        return True

    async def delete(self, key):
        self.calls.append(("delete", key, None))
        if self._reject("delete", None):
            return False
        self.records.pop(key, None)
        return True

    async def ping(self):
        return self.reachable


@pytest.fixture
def remote():
    return FakeRemote()


@pytest.fixture
def make_remote():
    return FakeRemote
