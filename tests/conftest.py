import asyncio
from types import SimpleNamespace

import pytest

from errors import ConfigurationError
from schemas import UploadedDocument


class FakeAPIClient:
    """Stands in for APIClient; records every request instead of sending it."""

    def __init__(self, reply="Invoice Number: INV-001", error=None, configured=True, model="test-model"):
        self.model = model
        self.reply = reply
        self.error = error
        self.configured = configured
        self.calls = []
        self.release = None

    def check_configuration(self):
        if not self.configured:
            raise ConfigurationError("API Key is missing. Please check your environment configuration.")
        return "test-key"

    async def generate_text(self, prompt_text, parts, context):
        self.calls.append(SimpleNamespace(prompt=prompt_text, parts=list(parts), context=context))
        if self.release is not None:
            await self.release.wait()
        if self.error is not None:
            raise self.error
        return self.reply

    def hold(self):
        """Keeps the next request in flight until the returned event is set."""
        self.release = asyncio.Event()
        return self.release

    async def close(self):
        pass


@pytest.fixture
def fake_client():
    return FakeAPIClient()


def write_document(directory, name="invoice.pdf", mime_type="application/pdf", content=b"%PDF-1.4 test"):
    path = directory / name
    path.write_bytes(content)
    return UploadedDocument(filename=name, mime_type=mime_type, path=str(path), size=len(content))


@pytest.fixture
def make_document(tmp_path):
    def factory(name="invoice.pdf", mime_type="application/pdf", content=b"%PDF-1.4 test"):
        return write_document(tmp_path, name, mime_type, content)
    return factory
