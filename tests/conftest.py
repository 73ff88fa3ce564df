"""
Octra Wallet Test Fixtures
"""

import hashlib

import pytest

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from models.store import MemoryStore
from models.wallet import WalletRecord
from services.settings import Settings
from wallet.address import address_from_public_key
from wallet.codec import SecretBytes
from wallet.context import WalletContext
from wallet.manager import WalletManager
from wallet.session import Session
from wallet.vault import WalletVault


PASSWORD = "Correct Horse Battery Staple"
FAST_ITERATIONS = 1000
START_MS = 1_700_000_000_000
USER_AGENT = "octra-wallet-tests/1.0"

# RFC 8032 section 7.1, test 1
RFC_SECRET = bytes.fromhex("9d61b19deffd5a60ba844af492ec2cc44449c5697b326919703bac031cae7f60")
RFC_PUBLIC = bytes.fromhex("d75a980182b10ab7d54bfed3c964073a0ee172f3daa62325af021a68f707511a")
RFC_EMPTY_SIGNATURE = bytes.fromhex(
    "e5564300c360ac729086e2cc806e828a84877f1eb8e5d974d873e065224901555"
    "fb8821590a33bacc61e39701cf9b46bd25bf5f0595bbe24655141438e7a100b"
)


def seed_with_valid_address(tag: int) -> bytes:
    """First seed in a fixed sequence whose address passes the 47-49 length check."""
    for i in range(256):
        seed = hashlib.sha256(bytes([tag, i])).digest()
        if len(address_from_public_key(public_key_of(seed))) >= 47:
            return seed
    raise AssertionError("no seed with a full-length address")


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: int = START_MS):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += int(seconds * 1000)


class DeterministicRng:
    """SHA-256 hash chain standing in for OS randomness."""

    def __init__(self, seed: bytes = b"octra-wallet-tests"):
        self._state = hashlib.sha256(seed).digest()

    def __call__(self, n: int) -> bytes:
        out = b""
        while len(out) < n:
            self._state = hashlib.sha256(self._state).digest()
            out += self._state
        return out[:n]


def public_key_of(seed: bytes) -> bytes:
    """Ed25519 public key straight from the backend, independent of wallet code."""
    return Ed25519PrivateKey.from_private_bytes(seed).public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )


def make_record(index: int, name: str = None, created_at: str = "2023-11-14T22:13:20.000Z") -> WalletRecord:
    """A wallet record whose key is 32 copies of `index`."""
    seed = bytes([index]) * 32
    public_key = public_key_of(seed)
    return WalletRecord(
        id=f"wallet_{START_MS}_{index:09x}",
        name=name or f"Wallet {index}",
        address=address_from_public_key(public_key),
        private_key=SecretBytes(seed),
        public_key=public_key,
        created_at=created_at,
        updated_at=created_at,
    )


@pytest.fixture(autouse=True)
def app_home(tmp_path, monkeypatch):
    """Keep settings and logs out of the real home directory."""
    home = tmp_path / "octra-home"
    monkeypatch.setenv("OCTRA_WALLET_HOME", str(home))
    return home


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def rng() -> DeterministicRng:
    return DeterministicRng()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def vault(store, rng) -> WalletVault:
    return WalletVault(store, rng=rng, iterations=FAST_ITERATIONS)


@pytest.fixture
def session(store, rng, clock, vault) -> Session:
    return Session(store, user_agent=USER_AGENT, rng=rng, clock=clock, mutex=vault.mutex)


@pytest.fixture
def unlocked_session(session) -> Session:
    session.setup_password(PASSWORD)
    return session


@pytest.fixture
def manager(vault, rng, clock, unlocked_session) -> WalletManager:
    manager = WalletManager(vault, rng=rng, clock=clock, ensure_unlocked=unlocked_session.require_unlocked)
    unlocked_session.add_lock_listener(manager.clear_sensitive_data)
    manager.initialize(PASSWORD)
    return manager


@pytest.fixture
def context(store, rng, clock) -> WalletContext:
    settings = Settings(auto_lock_duration=60, user_agent=USER_AGENT)
    return WalletContext(store, settings=settings, rng=rng, clock=clock, iterations=FAST_ITERATIONS)


@pytest.fixture
def seed_a() -> bytes:
    return seed_with_valid_address(1)


@pytest.fixture
def seed_b() -> bytes:
    return seed_with_valid_address(2)


@pytest.fixture
def address_a(seed_a) -> str:
    return address_from_public_key(public_key_of(seed_a))


@pytest.fixture
def address_b(seed_b) -> str:
    return address_from_public_key(public_key_of(seed_b))
