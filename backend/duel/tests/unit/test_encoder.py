"""
Tests for the MessagePack codec.
"""

import msgpack
import pytest

from duel.messaging.encoder import MAX_BUFFER_LEN, MAX_MAP_LEN, DecodeError, decode, encode


class TestEncode:
    def test_integer_keys_become_strings(self) -> None:
        data = {"type": "gameEnd", "scores": {1: 3, 2: 0}}

        assert decode(encode(data)) == {"type": "gameEnd", "scores": {"1": 3, "2": 0}}

    def test_nested_lists_of_dicts(self) -> None:
        data = {"history": [{"player": 1, "guess": "1234", "result": {"bulls": 1, "cows": 2}}]}

        assert decode(encode(data)) == data


class TestDecodeLimits:
    def test_non_map_rejected(self) -> None:
        with pytest.raises(DecodeError, match="expected map"):
            decode(msgpack.packb([1, 2, 3]))

    def test_garbage_rejected(self) -> None:
        with pytest.raises(DecodeError, match="failed to decode"):
            decode(b"\xc1")

    def test_truncated_rejected(self) -> None:
        packed = msgpack.packb({"type": "ping"})
        with pytest.raises(DecodeError):
            decode(packed[:-2])

    def test_oversized_buffer_rejected(self) -> None:
        with pytest.raises(DecodeError, match="payload too large"):
            decode(b"\x00" * (MAX_BUFFER_LEN + 1))

    def test_too_many_keys_rejected(self) -> None:
        data = {f"k{i}": i for i in range(MAX_MAP_LEN + 1)}
        with pytest.raises(DecodeError):
            decode(msgpack.packb(data))

    def test_plain_request_decodes(self) -> None:
        assert decode(msgpack.packb({"type": "joinRoom", "id": 1, "roomCode": "ABC123"})) == {
            "type": "joinRoom",
            "id": 1,
            "roomCode": "ABC123",
        }
