import pytest

from world_preview_site.scene import Texture


class ManualFrameScheduler:
    """Frame scheduler that only fires when ``step`` is called."""

    def __init__(self):
        self.callbacks = {}
        self._next = 0

    def request_frame(self, callback):
        self._next += 1
        self.callbacks[self._next] = callback
        return self._next

    def cancel_frame(self, fid):
        self.callbacks.pop(fid, None)

    def step(self, timestamp=0.0):
        due = list(self.callbacks.values())
        self.callbacks.clear()
        for cb in due:
            cb(timestamp)

    @property
    def pending(self):
        return len(self.callbacks)


class FakeTextureLoader:
    def __init__(self):
        self.loaded = []

    async def __call__(self, url):
        self.loaded.append(url)
        return Texture(url=url, width=2048, height=1024)


@pytest.fixture
def scheduler():
    return ManualFrameScheduler()


@pytest.fixture
def texture_loader():
    return FakeTextureLoader()
