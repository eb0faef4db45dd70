"""Shared fixtures: an in-memory stand-in for the OS keyring."""
import time
import threading

import keyring
import pytest
from keyring.errors import KeyringError


class FakeKeyring:
    """Dict-backed replacement for keyring.get_password/set_password."""

    def __init__(self, delay: float = 0.01):
        self.secrets: dict[tuple[str, str], str] = {}
        self.get_calls = 0
        self.set_calls = 0
        self.fail = False
        self._delay = delay
        self._lock = threading.Lock()

    def get_password(self, service, account):
        if self.fail:
            raise KeyringError("no backend available")
        with self._lock:
            self.get_calls += 1
        # widen the check-then-set window so races would show up
        time.sleep(self._delay)
        return self.secrets.get((service, account))

    def set_password(self, service, account, secret):
        if self.fail:
            raise KeyringError("no backend available")
        with self._lock:
            self.set_calls += 1
            self.secrets[(service, account)] = secret


@pytest.fixture
def fake_keyring(monkeypatch):
    fake = FakeKeyring()
    monkeypatch.setattr(keyring, "get_password", fake.get_password)
    monkeypatch.setattr(keyring, "set_password", fake.set_password)
    return fake
