"""Integration tests for the HTTP endpoints and the WebSocket protocol.

These drive the full stack (Starlette routes, MessagePack framing, router and
session manager) through the test client.
"""

from unittest.mock import patch

import pytest
from starlette.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from duel.logic.exceptions import ErrorCode
from duel.logic.settings import TimingConfig
from duel.server import websocket as ws_module
from duel.tests.helpers.websocket import recv_ack, recv_until, send_ws


@pytest.fixture
def timing():
    # the socket tests sit idle between frames, so keep the heartbeat slow
    return TimingConfig(
        start_delay_seconds=0.01,
        reconnect_grace_seconds=0.5,
        countdown_interval_seconds=0.1,
        heartbeat_timeout_seconds=30,
    )


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


def _create_room(ws, nickname: str = "Alice") -> str:
    send_ws(ws, {"type": "createRoom", "id": 1, "nickname": nickname})
    ack = recv_ack(ws, 1)
    assert ack["success"] is True
    return ack["roomCode"]


def _join_room(ws, room_code: str, nickname: str = "Bob") -> dict:
    send_ws(ws, {"type": "joinRoom", "id": 1, "roomCode": room_code, "nickname": nickname})
    return recv_ack(ws, 1)


def _start_match(host, guest) -> None:
    send_ws(host, {"type": "submitSecret", "id": 2, "secret": "1234"})
    assert recv_ack(host, 2)["message"] == "Secret accepted"
    send_ws(guest, {"type": "submitSecret", "id": 2, "secret": "5678"})
    assert recv_ack(guest, 2)["success"] is True
    recv_until(host, "gameStart")
    recv_until(guest, "gameStart")


class TestHttpEndpoints:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_status_counts_rooms_and_players(self, client):
        with client.websocket_connect("/ws") as ws:
            _create_room(ws)
            body = client.get("/api/status").json()

        assert body["status"] == "online"
        assert body["rooms"] == 1
        assert body["players"] == 1
        assert body["uptime"] >= 0
        assert "timestamp" in body

    def test_list_rooms_hides_secrets(self, client):
        with client.websocket_connect("/ws") as ws:
            room_code = _create_room(ws)
            rooms = client.get("/api/rooms").json()["rooms"]

        assert len(rooms) == 1
        assert set(rooms[0]) == {"code", "players", "started", "createdAt"}
        assert rooms[0]["code"] == room_code
        assert rooms[0]["players"] == 1
        assert rooms[0]["started"] is False

    def test_cors_header_for_allowed_origin(self, client):
        response = client.get("/health", headers={"Origin": "http://testserver"})
        assert response.headers["access-control-allow-origin"] == "http://testserver"


class TestWebSocketMatch:
    def test_create_join_and_room_update(self, client):
        with client.websocket_connect("/ws") as host, client.websocket_connect("/ws") as guest:
            room_code = _create_room(host)
            ack = _join_room(guest, room_code.lower())

            assert ack == {"type": "ack", "id": 1, "success": True, "roomCode": room_code, "seat": 2}
            update, _ = recv_until(host, "roomUpdate")
            while len(update["players"]) < 2:
                update, _ = recv_until(host, "roomUpdate")
            assert [p["nickname"] for p in update["players"]] == ["Alice", "Bob"]

    def test_full_match_to_win(self, client):
        with client.websocket_connect("/ws") as host, client.websocket_connect("/ws") as guest:
            room_code = _create_room(host)
            _join_room(guest, room_code)
            _start_match(host, guest)

            send_ws(host, {"type": "makeGuess", "id": 3, "guess": "5670"})
            ack = recv_ack(host, 3)
            assert ack["result"] == {"correctPosition": 3, "correctNumber": 3}
            assert ack["isWin"] is False
            turn, _ = recv_until(guest, "turnChange")
            assert turn["currentPlayer"] == 2

            send_ws(guest, {"type": "makeGuess", "id": 3, "guess": "1234"})
            assert recv_ack(guest, 3)["isWin"] is True
            end, _ = recv_until(host, "gameEnd")
            assert end["winner"] == 2
            assert end["winnerName"] == "Bob"
            assert end["winningGuess"] == "1234"
            assert len(end["history"]) == 2

    def test_out_of_turn_guess_rejected(self, client):
        with client.websocket_connect("/ws") as host, client.websocket_connect("/ws") as guest:
            _join_room(guest, _create_room(host))
            _start_match(host, guest)

            send_ws(guest, {"type": "makeGuess", "id": 9, "guess": "1234"})
            ack = recv_ack(guest, 9)
            assert ack["success"] is False
            assert ack["code"] == ErrorCode.NOT_YOUR_TURN

    def test_join_unknown_room(self, client):
        with client.websocket_connect("/ws") as ws:
            ack = _join_room(ws, "ZZZZZZ")
            assert ack["success"] is False
            assert ack["code"] == ErrorCode.ROOM_NOT_FOUND


class TestWebSocketFraming:
    def test_malformed_frame_keeps_connection(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_bytes(b"\xc1")
            ack = recv_ack(ws)
            assert ack["success"] is False
            assert ack["code"] == ErrorCode.INVALID_MESSAGE

            send_ws(ws, {"type": "ping", "id": "p"})
            assert recv_ack(ws, "p")["message"] == "pong"

    def test_repeated_decode_errors_close_connection(self, client):
        with client.websocket_connect("/ws") as ws:
            for _ in range(5):
                ws.send_bytes(b"\xc1")
                recv_ack(ws)
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_bytes()
            assert exc_info.value.code == 4004

    def test_decode_error_counter_resets_on_valid_message(self, client):
        with patch.object(ws_module, "_MAX_DECODE_ERRORS", 3), client.websocket_connect("/ws") as ws:
            for _ in range(2):
                ws.send_bytes(b"\xc1")
                recv_ack(ws)
            send_ws(ws, {"type": "ping", "id": 1})
            recv_ack(ws, 1)
            for _ in range(2):
                ws.send_bytes(b"\xc1")
                recv_ack(ws)

            send_ws(ws, {"type": "ping", "id": 2})
            assert recv_ack(ws, 2)["success"] is True

    def test_unknown_message_type(self, client):
        with client.websocket_connect("/ws") as ws:
            send_ws(ws, {"type": "teleport", "id": 7})
            ack = recv_ack(ws, 7)
            assert ack["code"] == ErrorCode.INVALID_MESSAGE

    def test_flood_is_rate_limited(self, client):
        with client.websocket_connect("/ws") as ws:
            for i in range(15):
                send_ws(ws, {"type": "ping", "id": i})
            acks = [recv_ack(ws) for _ in range(15)]

        limited = [a for a in acks if a.get("code") == ErrorCode.RATE_LIMITED]
        assert limited
        assert all(a["success"] is False for a in limited)


class TestWebSocketReconnect:
    def test_disconnect_then_reconnect_on_new_socket(self, client):
        with client.websocket_connect("/ws") as host:
            with client.websocket_connect("/ws") as guest:
                room_code = _create_room(host)
                _join_room(guest, room_code)
                _start_match(host, guest)

            notice, _ = recv_until(host, "playerDisconnected")
            assert notice["seat"] == 2
            assert notice["reconnectTimeLeft"] == 1

            with client.websocket_connect("/ws") as returning:
                send_ws(returning, {"type": "attemptReconnect", "id": 4, "roomCode": room_code, "seat": 2})
                ack = recv_ack(returning, 4)
                assert ack["success"] is True
                assert ack["mySecret"] == "5678"
                assert ack["gameState"]["currentPlayer"] == 1

                recv_until(host, "playerReconnected")
                stop, _ = recv_until(host, "stopReconnectCountdown")
                assert stop["seat"] == 2

    def test_grace_expiry_forfeits_to_remaining_player(self, client):
        with client.websocket_connect("/ws") as host:
            with client.websocket_connect("/ws") as guest:
                _join_room(guest, _create_room(host))
                _start_match(host, guest)

            end, skipped = recv_until(host, "gameEnd")
            assert end["winner"] == 1
            assert end["reason"] == "opponent_timeout"
            assert any(m["type"] == "reconnectCountdown" for m in skipped)
