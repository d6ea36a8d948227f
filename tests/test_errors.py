"""Tests for the structured error chain."""

from __future__ import annotations

from keysync.errors import ErrorKind, KeySyncError, MalformedLineError, RemoteError, io_error


class TestKeySyncError:

    def test_message_and_kind(self):
        err = KeySyncError("boom", ErrorKind.IO)
        assert str(err) == "boom"
        assert err.kind is ErrorKind.IO
        assert err.__cause__ is None

    def test_wrap_keeps_kind_and_chains(self):
        inner = RemoteError("invalid status code: 404", status_code=404)
        outer = inner.wrap("could not get public keys")
        assert outer.kind is ErrorKind.REMOTE
        assert outer.__cause__ is inner
        assert str(outer) == "could not get public keys: invalid status code: 404"

    def test_chain_includes_foreign_cause(self):
        err = io_error("could not open authorized keys file", FileNotFoundError(2, "No such file"))
        messages = list(err.wrap("could not update authorized keys file").chain())
        assert messages[0] == "could not update authorized keys file"
        assert messages[1] == "could not open authorized keys file"
        assert "No such file" in messages[2]

    def test_exit_codes_by_kind(self):
        assert MalformedLineError(1).exit_code == 65
        assert RemoteError("x").exit_code == 69
        assert KeySyncError("x", ErrorKind.IO).exit_code == 74
        assert KeySyncError("x", ErrorKind.CONFIG).exit_code == 78

    def test_every_kind_has_nonzero_exit(self):
        for kind in ErrorKind:
            assert kind.exit_code > 0
