import httpx
import pytest
from fakes import FakeYouTube

from tubefetch.client import Client
from tubefetch.core.cipher import CipherCache


@pytest.fixture
def fake_youtube() -> FakeYouTube:
    return FakeYouTube()


@pytest.fixture
def cipher_cache() -> CipherCache:
    return CipherCache()


@pytest.fixture
def client(fake_youtube, cipher_cache) -> Client:
    return Client(transport=httpx.MockTransport(fake_youtube.handler), cache=cipher_cache)
