import pytest

from echonet_local.gateway import GatewayError, GatewayTimeout, PropertyGateway
from echonet_local.retry import RetryExecutor

ADDRESS = '192.168.1.10'
EOJ = (0x01, 0x30, 0x01)


class FakeGateway(PropertyGateway):
    """In-memory gateway: per-address property values and scripted failures."""

    def __init__(self):
        self.devices = {}
        self.get_failures = 0
        self.set_failures = 0
        self.get_batch_calls = []
        self.set_batch_calls = []
        self.handlers = []
        self.discovery_handlers = []
        self.discover_calls = []
        self.discovery_stopped = False
        self.closed = False

    def device(self, address=ADDRESS):
        return self.devices.setdefault(address, {})

    async def get(self, address, object_id, code):
        values = await self.get_batch(address, object_id, [code])
        return values[code]

    async def get_batch(self, address, object_id, codes):
        codes = list(codes)
        self.get_batch_calls.append((address, tuple(object_id), codes))
        if self.get_failures:
            self.get_failures -= 1
            raise GatewayTimeout(f"No response from {address}")
        values = self.devices.get(address, {})
        return {code: values.get(code) for code in codes}

    async def set_batch(self, address, object_id, props):
        self.set_batch_calls.append((address, tuple(object_id), list(props)))
        if self.set_failures:
            self.set_failures -= 1
            raise GatewayError(f"{address} rejected properties")

    def subscribe(self, handler):
        self.handlers.append(handler)

    def unsubscribe(self, handler):
        if handler in self.handlers:
            self.handlers.remove(handler)

    async def discover(self, handler, addresses=()):
        self.discovery_handlers.append(handler)
        self.discover_calls.append(list(addresses))

    def stop_discovery(self):
        self.discovery_stopped = True
        self.discovery_handlers.clear()

    async def close(self):
        self.closed = True

    def notify(self, address, object_id, props):
        for handler in list(self.handlers):
            handler(address, object_id, props)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def fast_retry():
    """Retries without real waiting."""
    return RetryExecutor(delay_unit=0)
