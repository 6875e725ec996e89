"""
Tests for qcc_core.client — aiohttp backend client and send flows.

Covers:
  - Time oracle parsing (plain, JSON number, JSON object)
  - Broadcast success, remote rejection and HTTP failures
  - Transaction lookup
  - send_transaction end to end against a local test server
  - send_secure_transaction erasing the slot and ordering of steps
  - Slot unlock and signing kept off the event loop thread
  - Transport errors surfacing as NetworkError
"""

import asyncio
import contextlib
import json
import threading
import time

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from conftest import PASSWORD, RFC8032_PUBLIC, RFC8032_SECRET

from qcc_core.client import (
    QCCClient,
    _parse_timestamp,
    check_broadcast_response,
    extract_tx_hash,
    send_secure_transaction,
    send_transaction,
)
from qcc_core.crypto_utils import address
from qcc_core.errors import (
    AuthenticationFailedError,
    InvalidAmountError,
    NetworkError,
    RemoteTransactionError,
)
from qcc_core.key_manager import KeySlotState
from qcc_core.transaction import PAYLOAD_KEY, verify_signed_data

SERVER_TS = 1_700_000_000_123_000
TO = "ef" * 22


class _FakeBackend:
    """Records requests and serves canned responses."""

    def __init__(self, ts_body=str(SERVER_TS), broadcast_response=None, ts_status=200):
        self.ts_body = ts_body
        self.ts_status = ts_status
        self.broadcast_response = broadcast_response or {"output": "ok", "txid": "abc123"}
        self.calls: list[str] = []
        self.broadcasts: list[str] = []
        self.on_ts = None

    async def handle_ts(self, request):
        self.calls.append("ts")
        if self.on_ts:
            self.on_ts()
        return web.Response(text=self.ts_body, status=self.ts_status)

    async def handle_broadcast(self, request):
        self.calls.append("broadcast")
        self.broadcasts.append(await request.text())
        return web.json_response(self.broadcast_response)

    async def handle_tx(self, request):
        h = request.match_info["hash"]
        if h == "missing":
            return web.json_response({"error": "not found"}, status=404)
        return web.json_response({"hash": h, "type": "Send"})

    def app(self):
        app = web.Application()
        app.router.add_get("/api/ts", self.handle_ts)
        app.router.add_post("/broadcast/", self.handle_broadcast)
        app.router.add_get("/txs/{hash}", self.handle_tx)
        return app


def _base_url(server):
    return f"http://{server.host}:{server.port}"


# ═══════════════════════════════════════════════════════════════════
#  Pure helpers
# ═══════════════════════════════════════════════════════════════════

class TestHelpers:

    def test_extract_tx_hash_order(self):
        assert extract_tx_hash({"hash": "h", "txid": "t"}) == "t"
        assert extract_tx_hash({"transactionHash": "x"}) == "x"
        assert extract_tx_hash({"output": "ok"}) is None

    def test_check_broadcast_response(self):
        assert check_broadcast_response({"output": "done"}) == {"output": "done"}
        with pytest.raises(RemoteTransactionError) as ctx:
            check_broadcast_response({"output": "error: nonce"})
        assert ctx.value.output == "error: nonce"
        assert str(ctx.value) == "Failed to send transaction: error: nonce"

    def test_non_dict_response_wrapped(self):
        with pytest.raises(RemoteTransactionError):
            check_broadcast_response("internal error")

    @pytest.mark.parametrize("body, expected", [
        ("1700000000000000", 1_700_000_000_000_000),
        (" 42\n", 42),
        ('"42"', 42),
        ('{"timestamp": 7}', 7),
        ('{"ts": 8}', 8),
        ("9.0", 9),
    ])
    def test_parse_timestamp(self, body, expected):
        assert _parse_timestamp(body) == expected

    @pytest.mark.parametrize("body", ["", "soon", "true", "1.5", '{"x": 1}'])
    def test_parse_timestamp_rejects(self, body):
        with pytest.raises(ValueError):
            _parse_timestamp(body)


# ═══════════════════════════════════════════════════════════════════
#  Endpoints
# ═══════════════════════════════════════════════════════════════════

class TestEndpoints:

    @pytest.mark.asyncio
    async def test_fetch_server_timestamp(self):
        backend = _FakeBackend()
        async with TestServer(backend.app()) as server:
            async with QCCClient(_base_url(server)) as client:
                assert await client.fetch_server_timestamp() == SERVER_TS

    @pytest.mark.asyncio
    async def test_bad_timestamp_is_network_error(self):
        backend = _FakeBackend(ts_body="not a number")
        async with TestServer(backend.app()) as server:
            async with QCCClient(_base_url(server)) as client:
                with pytest.raises(NetworkError):
                    await client.fetch_server_timestamp()

    @pytest.mark.asyncio
    async def test_http_error_is_network_error(self):
        backend = _FakeBackend(ts_status=503)
        async with TestServer(backend.app()) as server:
            async with QCCClient(_base_url(server)) as client:
                with pytest.raises(NetworkError):
                    await client.fetch_server_timestamp()

    @pytest.mark.asyncio
    async def test_broadcast_rejected(self):
        backend = _FakeBackend(broadcast_response={"output": "error: insufficient funds"})
        async with TestServer(backend.app()) as server:
            async with QCCClient(_base_url(server)) as client:
                with pytest.raises(RemoteTransactionError) as ctx:
                    await client.broadcast("{}")
        assert "insufficient funds" in str(ctx.value)

    @pytest.mark.asyncio
    async def test_transaction_lookup(self):
        backend = _FakeBackend()
        async with TestServer(backend.app()) as server:
            async with QCCClient(_base_url(server)) as client:
                details = await client.get_transaction_details("abc")
                assert details == {"hash": "abc", "type": "Send"}
                assert (await client.verify_transaction("abc"))["exists"] is True
                missing = await client.verify_transaction("missing")
                assert missing["exists"] is False

    @pytest.mark.asyncio
    async def test_connection_refused(self):
        async with QCCClient("http://127.0.0.1:1", timeout=5) as client:
            with pytest.raises(NetworkError) as ctx:
                await client.fetch_server_timestamp()
        assert ctx.value.__cause__ is not None


# ═══════════════════════════════════════════════════════════════════
#  Send flows
# ═══════════════════════════════════════════════════════════════════

class TestSendFlows:

    @pytest.mark.asyncio
    async def test_send_transaction(self):
        backend = _FakeBackend()
        async with TestServer(backend.app()) as server:
            async with QCCClient(_base_url(server)) as client:
                result = await send_transaction(client, RFC8032_SECRET, TO, "1.5")

        assert extract_tx_hash(result) == "abc123"
        assert backend.calls == ["ts", "broadcast"]
        env = json.loads(backend.broadcasts[0])
        tx = env[PAYLOAD_KEY]
        assert tx["amount"] == "1500000000000000000"
        assert tx["timestamp"] == SERVER_TS
        assert tx["from"] == address(RFC8032_PUBLIC)
        assert verify_signed_data(env)

    @pytest.mark.asyncio
    async def test_invalid_amount_sends_nothing(self):
        backend = _FakeBackend()
        async with TestServer(backend.app()) as server:
            async with QCCClient(_base_url(server)) as client:
                with pytest.raises(InvalidAmountError):
                    await send_transaction(client, RFC8032_SECRET, TO, "0")
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_secure_send_erases_slot(self, stored_manager):
        backend = _FakeBackend()
        states = []
        backend.on_ts = lambda: states.append(stored_manager.state("main"))
        async with TestServer(backend.app()) as server:
            async with QCCClient(_base_url(server)) as client:
                result = await send_secure_transaction(
                    client, stored_manager, "main", PASSWORD, TO, "2",
                )

        assert result["output"] == "ok"
        assert states == [KeySlotState.LOCKED]
        assert stored_manager.state("main") is KeySlotState.ERASED
        assert verify_signed_data(backend.broadcasts[0])

    @pytest.mark.asyncio
    async def test_secure_send_unlocks_off_the_event_loop(self, stored_manager, monkeypatch):
        loop_thread = threading.get_ident()
        signing_threads = []
        ticks = []
        original = stored_manager.with_unlocked_key

        def slow_unlock(slot_id, credential, fn):
            signing_threads.append(threading.get_ident())
            time.sleep(0.2)
            return original(slot_id, credential, fn)

        async def ticker():
            while True:
                ticks.append(1)
                await asyncio.sleep(0.01)

        monkeypatch.setattr(stored_manager, "with_unlocked_key", slow_unlock)
        backend = _FakeBackend()
        async with TestServer(backend.app()) as server:
            async with QCCClient(_base_url(server)) as client:
                task = asyncio.create_task(ticker())
                await send_secure_transaction(client, stored_manager, "main", PASSWORD, TO, "2")
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

        assert signing_threads and signing_threads[0] != loop_thread
        assert len(ticks) > 5
        assert stored_manager.state("main") is KeySlotState.ERASED
        assert verify_signed_data(backend.broadcasts[0])

    @pytest.mark.asyncio
    async def test_secure_send_wrong_password(self, stored_manager):
        backend = _FakeBackend()
        async with TestServer(backend.app()) as server:
            async with QCCClient(_base_url(server)) as client:
                with pytest.raises(AuthenticationFailedError):
                    await send_secure_transaction(
                        client, stored_manager, "main", "wrong", TO, "2",
                    )
        assert backend.broadcasts == []
        assert stored_manager.state("main") is KeySlotState.LOCKED

    @pytest.mark.asyncio
    async def test_secure_send_remote_rejection_still_erases(self, stored_manager):
        backend = _FakeBackend(broadcast_response={"output": "error: bad nonce"})
        async with TestServer(backend.app()) as server:
            async with QCCClient(_base_url(server)) as client:
                with pytest.raises(RemoteTransactionError):
                    await send_secure_transaction(
                        client, stored_manager, "main", PASSWORD, TO, "2",
                    )
        assert stored_manager.state("main") is KeySlotState.ERASED
