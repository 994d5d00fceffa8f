"""Shared fixtures for the gateway tests."""

import pytest
import pytest_asyncio
from eth_account import Account
from eth_account.messages import encode_defunct

from auth import AuthManager
from config import default_settings
from database import MemoryStore
from datasets import DatasetCatalog
from gateway import QueryGateway

TEST_DOMAIN = "market.test"

def sign(account, message: str) -> str:
    """Sign ``message`` with EIP-191 and return a 0x-prefixed hex signature."""
    signature = account.sign_message(encode_defunct(text=message)).signature.hex()
    return signature if signature.startswith("0x") else "0x" + signature

@pytest.fixture
def settings():
    """Default settings with a fixed secret and domain."""
    return default_settings(jwt_secret="test-secret", auth_domain=TEST_DOMAIN)

@pytest.fixture
def store():
    """Fresh in-memory store."""
    return MemoryStore(timeout=1.0)

@pytest.fixture
def wallet():
    """Fresh wallet key pair."""
    return Account.create()

@pytest.fixture
def other_wallet():
    """A second, unrelated wallet."""
    return Account.create()

@pytest_asyncio.fixture
async def auth_manager(store, settings):
    """Create and return an AuthManager over the memory store."""
    return AuthManager(store, settings)

@pytest_asyncio.fixture
async def catalog(store, settings):
    """Create and return a DatasetCatalog over the memory store."""
    return DatasetCatalog(store, settings)

@pytest_asyncio.fixture
async def gateway(auth_manager, catalog):
    """Create and return a QueryGateway."""
    return QueryGateway(auth_manager, catalog)

@pytest_asyncio.fixture
async def seller(auth_manager):
    """Sign up a seller and return ``{user, token}``."""
    return await auth_manager.signup("seller@example.com", "longenough1")

@pytest_asyncio.fixture
async def other_seller(auth_manager):
    """Sign up a second seller and return ``{user, token}``."""
    return await auth_manager.signup("other@example.com", "longenough2")
