"""Tests for connection tracing and record dispatch."""

import struct
import sys
import threading
from pathlib import Path
from typing import List, Tuple

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from synthcap.dispatcher import CaptureDispatcher
from synthcap.errors import CaptureError, MalformedEndpointError, UntracedConnectionError
from synthcap.model import AddressEndpoint, CaptureEvent, Direction
from synthcap.writer import CaptureFileWriter

LOCAL = AddressEndpoint.parse("127.0.0.1", 40000)
REMOTE = AddressEndpoint.parse("93.184.216.34", 80)

Record = Tuple[Tuple[int, int, int, int], bytes]


def _read_records(path: Path) -> List[Record]:
    data = path.read_bytes()
    assert struct.unpack(">I", data[:4])[0] == 0xA1B2C3D4
    records: List[Record] = []
    offset = 24
    while offset < len(data):
        header = struct.unpack(">IIII", data[offset : offset + 16])
        offset += 16
        records.append((header, data[offset : offset + header[2]]))
        offset += header[2]
    assert offset == len(data)
    return records


def _tcp_fields(body: bytes) -> Tuple[int, int, int]:
    ip_len = 20 if body[0] >> 4 == 4 else 40
    sport, dport, seq = struct.unpack(">HHI", body[ip_len : ip_len + 8])
    return sport, dport, seq


def _dispatcher(tmp_path: Path, **kwargs) -> CaptureDispatcher:
    return CaptureDispatcher(CaptureFileWriter(tmp_path / "trace.pcap"), **kwargs)


def test_http_request_scenario(tmp_path: Path) -> None:
    dispatcher = _dispatcher(tmp_path)
    dispatcher.start_trace(1, LOCAL, REMOTE)

    request = b"GET / HTTP/1.0\r\n\r\n"
    assert len(request) == 18
    assert dispatcher.on_event(CaptureEvent(1, Direction.OUTBOUND, request, 1700000000.5))
    assert dispatcher.on_event(CaptureEvent(1, Direction.OUTBOUND, b"more", 1700000001.0))

    records = _read_records(dispatcher.writer.path)
    assert len(records) == 2

    (sec, usec, incl, orig), body = records[0]
    assert (sec, usec) == (1700000000, 500000)
    assert incl == orig == 40 + 18
    assert _tcp_fields(body) == (40000, 80, 0)
    assert body[40:] == request

    assert _tcp_fields(records[1][1]) == (40000, 80, 18)
    assert records[1][1][40:] == b"more"
    assert dispatcher.get_state(1).seq_out == 22


def test_single_header_and_one_record_per_event(tmp_path: Path) -> None:
    dispatcher = _dispatcher(tmp_path)
    dispatcher.start_trace("c", LOCAL, REMOTE)

    payloads = [b"a" * n for n in (1, 0, 5, 300, 2)]
    for index, payload in enumerate(payloads):
        direction = Direction.OUTBOUND if index % 2 == 0 else Direction.INBOUND
        dispatcher.on_event(CaptureEvent("c", direction, payload, float(index)))

    records = _read_records(dispatcher.writer.path)
    assert len(records) == len(payloads)
    for ((_, _, incl, orig), body), payload in zip(records, payloads):
        assert incl == orig == len(body) == 40 + len(payload)
        assert struct.unpack(">H", body[2:4])[0] == len(body)


def test_sequence_numbers_track_each_direction_independently(tmp_path: Path) -> None:
    dispatcher = _dispatcher(tmp_path)
    dispatcher.start_trace(1, LOCAL, REMOTE)

    script = [
        (Direction.OUTBOUND, 10),
        (Direction.INBOUND, 100),
        (Direction.OUTBOUND, 5),
        (Direction.INBOUND, 1),
        (Direction.OUTBOUND, 7),
    ]
    for direction, size in script:
        dispatcher.on_event(CaptureEvent(1, direction, b"x" * size, 0.0))

    seqs = [_tcp_fields(body)[2] for _, body in _read_records(dispatcher.writer.path)]
    assert seqs == [0, 0, 10, 100, 15]


def test_interleaved_connections_keep_call_order(tmp_path: Path) -> None:
    dispatcher = _dispatcher(tmp_path)
    dispatcher.start_trace(1, LOCAL, REMOTE)
    dispatcher.start_trace(2, AddressEndpoint.parse("10.0.0.5", 51000), AddressEndpoint.parse("10.0.0.6", 22))

    dispatcher.on_event(CaptureEvent(2, Direction.INBOUND, b"ssh", 1.0))
    dispatcher.on_event(CaptureEvent(1, Direction.INBOUND, b"HTTP/1.0 200 OK", 2.0))

    records = _read_records(dispatcher.writer.path)
    assert [_tcp_fields(body) for _, body in records] == [(22, 51000, 0), (80, 40000, 0)]


def test_ipv6_connection_uses_ipv6_layout(tmp_path: Path) -> None:
    dispatcher = _dispatcher(tmp_path)
    dispatcher.start_trace(6, AddressEndpoint.parse("fe80::1", 1234), AddressEndpoint.parse("2001:db8::1", 443))

    dispatcher.on_event(CaptureEvent(6, Direction.OUTBOUND, b"hello", 0.0))
    dispatcher.on_event(CaptureEvent(6, Direction.INBOUND, b"world!", 0.0))

    for _, body in _read_records(dispatcher.writer.path):
        assert body[0] >> 4 == 6
        assert body[6] == 6
        assert len(body) == 60 + struct.unpack(">H", body[4:6])[0] - 20


def test_untraced_events_are_dropped(tmp_path: Path) -> None:
    dispatcher = _dispatcher(tmp_path)

    assert not dispatcher.on_event(CaptureEvent(9, Direction.OUTBOUND, b"x", 0.0))
    assert dispatcher.dropped_events == 1
    assert not dispatcher.writer.path.exists()


def test_untraced_events_raise_in_strict_mode(tmp_path: Path) -> None:
    dispatcher = _dispatcher(tmp_path, strict=True)

    with pytest.raises(UntracedConnectionError) as excinfo:
        dispatcher.on_event(CaptureEvent(9, Direction.INBOUND, b"x", 0.0))
    assert excinfo.value.connection_id == 9


def test_stop_trace_discards_state_but_keeps_output(tmp_path: Path) -> None:
    dispatcher = _dispatcher(tmp_path)
    dispatcher.start_trace(1, LOCAL, REMOTE)
    dispatcher.on_event(CaptureEvent(1, Direction.OUTBOUND, b"abc", 0.0))

    assert dispatcher.stop_trace(1)
    assert not dispatcher.stop_trace(1)
    assert not dispatcher.is_traced(1)
    assert not dispatcher.on_event(CaptureEvent(1, Direction.OUTBOUND, b"abc", 0.0))

    dispatcher.start_trace(1, LOCAL, REMOTE)
    dispatcher.on_event(CaptureEvent(1, Direction.OUTBOUND, b"def", 0.0))

    records = _read_records(dispatcher.writer.path)
    assert [_tcp_fields(body)[2] for _, body in records] == [0, 0]


def test_start_trace_rejects_bad_endpoints(tmp_path: Path) -> None:
    dispatcher = _dispatcher(tmp_path)

    with pytest.raises(MalformedEndpointError):
        dispatcher.start_trace(1, LOCAL, AddressEndpoint.parse("::1", 80))
    with pytest.raises(MalformedEndpointError):
        AddressEndpoint(b"\x01\x02\x03\x04\x05", 80)
    with pytest.raises(MalformedEndpointError):
        AddressEndpoint(b"\x7f\x00\x00\x01", 70000)
    assert dispatcher.traced_ids() == []


def test_start_trace_twice_is_an_error(tmp_path: Path) -> None:
    dispatcher = _dispatcher(tmp_path)
    dispatcher.start_trace(1, LOCAL, REMOTE)
    with pytest.raises(CaptureError):
        dispatcher.start_trace(1, LOCAL, REMOTE)


def test_sequence_counter_wraps(tmp_path: Path) -> None:
    dispatcher = _dispatcher(tmp_path)
    state = dispatcher.start_trace(1, LOCAL, REMOTE)
    state.seq_out = 0xFFFFFFF0

    dispatcher.on_event(CaptureEvent(1, Direction.OUTBOUND, b"z" * 32, 0.0))
    dispatcher.on_event(CaptureEvent(1, Direction.OUTBOUND, b"z", 0.0))

    seqs = [_tcp_fields(body)[2] for _, body in _read_records(dispatcher.writer.path)]
    assert seqs == [0xFFFFFFF0, 16]


def test_oversized_payload_is_segmented(tmp_path: Path) -> None:
    dispatcher = _dispatcher(tmp_path)
    dispatcher.start_trace(1, LOCAL, REMOTE)

    payload = bytes(range(256)) * 300
    dispatcher.on_event(CaptureEvent(1, Direction.OUTBOUND, payload, 0.0))

    records = _read_records(dispatcher.writer.path)
    assert len(records) == 2
    assert [_tcp_fields(body)[2] for _, body in records] == [0, 65495]
    assert all(incl <= 65535 for (_, _, incl, _), _ in records)
    assert b"".join(body[40:] for _, body in records) == payload
    assert dispatcher.get_state(1).seq_out == len(payload)


def test_stop_all(tmp_path: Path) -> None:
    dispatcher = _dispatcher(tmp_path)
    dispatcher.start_trace(1, LOCAL, REMOTE)
    dispatcher.start_trace(2, LOCAL, REMOTE)

    assert dispatcher.stop_all() == 2
    assert dispatcher.traced_ids() == []


def test_large_snaplen_still_respects_16_bit_length_fields(tmp_path: Path) -> None:
    dispatcher = CaptureDispatcher(CaptureFileWriter(tmp_path / "big.pcap", snaplen=262144))
    dispatcher.start_trace(1, LOCAL, REMOTE)

    payload = b"x" * 70000
    dispatcher.on_event(CaptureEvent(1, Direction.OUTBOUND, payload, 0.0))

    records = _read_records(dispatcher.writer.path)
    assert len(records) == 2
    for (_, _, incl, _), body in records:
        assert struct.unpack(">H", body[2:4])[0] == incl <= 65535
    assert [_tcp_fields(body)[2] for _, body in records] == [0, 65495]


def test_concurrent_connections_never_interleave_records(tmp_path: Path) -> None:
    dispatcher = _dispatcher(tmp_path)
    threads_count, events_per_thread = 8, 50
    for conn in range(threads_count):
        dispatcher.start_trace(conn, AddressEndpoint.parse(f"10.0.0.{conn + 1}", 40000 + conn), REMOTE)
    start = threading.Barrier(threads_count)

    def _send(conn: int) -> None:
        start.wait()
        for index in range(events_per_thread):
            dispatcher.on_event(CaptureEvent(conn, Direction.OUTBOUND, bytes([conn]) * (index + 1), float(index)))

    workers = [threading.Thread(target=_send, args=(conn,)) for conn in range(threads_count)]
    for worker in workers:
        worker.start()
    for worker in workers:
        worker.join()

    data = dispatcher.writer.path.read_bytes()
    assert data.count(bytes.fromhex("a1b2c3d4")) == 1
    records = _read_records(dispatcher.writer.path)
    assert len(records) == threads_count * events_per_thread

    seqs_by_conn: dict = {}
    for (_, _, incl, orig), body in records:
        assert incl == orig == len(body) == struct.unpack(">H", body[2:4])[0]
        sport, _, seq = _tcp_fields(body)
        conn = sport - 40000
        assert set(body[40:]) == {conn}
        seqs_by_conn.setdefault(conn, []).append((seq, len(body) - 40))

    for conn, entries in seqs_by_conn.items():
        expected = 0
        for seq, size in entries:
            assert seq == expected
            expected += size
        assert expected == dispatcher.get_state(conn).seq_out
