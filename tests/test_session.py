"""
Session store tests
会话凭据存储测试
"""

import os
import stat

import pytest

from undercover_client.schemas import User
from undercover_client.utils.session import SessionStore


class TestSessionStore:
    """测试凭据存取"""

    def test_memory_store_starts_empty(self):
        store = SessionStore()
        assert store.get_credential() is None
        assert store.is_present() is False

    def test_set_and_clear(self):
        store = SessionStore()
        store.set_credential("abc")
        store.profile = User(id="u1", email="a@example.com", username="a")
        assert store.is_present()

        store.clear()
        assert store.get_credential() is None
        assert store.profile is None

    def test_empty_credential_rejected(self):
        store = SessionStore()
        with pytest.raises(ValueError):
            store.set_credential("")

    def test_credential_survives_restart(self, tmp_path):
        """凭据写入文件，重启后仍然存在"""
        token_file = str(tmp_path / "nested" / "token")
        SessionStore(token_file=token_file).set_credential("persisted-token")

        assert SessionStore(token_file=token_file).get_credential() == "persisted-token"
        mode = stat.S_IMODE(os.stat(token_file).st_mode)
        assert mode == 0o600

    def test_clear_removes_file(self, tmp_path):
        token_file = str(tmp_path / "token")
        store = SessionStore(token_file=token_file)
        store.set_credential("t")
        store.clear()

        assert not os.path.exists(token_file)
        assert SessionStore(token_file=token_file).is_present() is False

    def test_listeners_notified_on_clear(self):
        store = SessionStore(token="t")
        calls = []
        remove = store.add_listener(lambda: calls.append("cleared"))

        store.clear()
        assert calls == ["cleared"]

        remove()
        store.set_credential("again")
        store.clear()
        assert calls == ["cleared"]
