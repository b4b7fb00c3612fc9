"""Tests for the fan-out router."""

from __future__ import annotations

import logging

import pytest

from backplane import router as router_module
from backplane.endpoints.descriptor import file_endpoint, udp_endpoint
from backplane.endpoints.errors import (
    ConnectError,
    EndpointNotFoundError,
    InvalidStateError,
    ReadIOError,
)
from backplane.endpoints.readable import FileSource, NullSource, TcpSource
from backplane.endpoints.writable import NullSink
from backplane.router import (
    DEFAULT_CHUNK_SIZE,
    OutputFailure,
    Router,
    RouterState,
    StopReason,
)
from tests.helpers import BackgroundCall, FakeSink, FakeSource, free_port

# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


class TestRouterConstruction:
    def test_starts_running(self):
        r = Router(FakeSource([]), [FakeSink()])
        assert r.state is RouterState.RUNNING
        assert r.stop_reason is None
        assert r.chunk_size == DEFAULT_CHUNK_SIZE

    def test_requires_an_output(self):
        with pytest.raises(ValueError, match="at least one output"):
            Router(FakeSource([]), [])

    @pytest.mark.parametrize("chunk_size", [0, -1])
    def test_chunk_size_must_be_positive(self, chunk_size):
        with pytest.raises(ValueError, match="chunk_size"):
            Router(FakeSource([]), [FakeSink()], chunk_size=chunk_size)

    def test_outputs_kept_in_order(self):
        sinks = [FakeSink(), FakeSink(), FakeSink()]
        r = Router(FakeSource([]), sinks)
        assert r.outputs == tuple(sinks)
        assert len(r.stats.outputs) == 3

    def test_repr(self):
        r = Router(FakeSource([]), [FakeSink(), FakeSink()])
        assert "2 outputs" in repr(r)
        assert "running" in repr(r)


# ---------------------------------------------------------------------------
# Routing loop
# ---------------------------------------------------------------------------


class TestRouting:
    def test_every_output_gets_every_chunk_in_order(self):
        sinks = [FakeSink(), FakeSink()]
        r = Router(FakeSource([b"c1", b"c2", b"c3"]), sinks)
        stats = r.run()
        for sink in sinks:
            assert sink.received == [b"c1", b"c2", b"c3"]
        assert stats.chunks == 3
        assert stats.bytes_read == 6

    def test_stops_at_end_of_data(self):
        source = FakeSource([b"a", b"b"])
        r = Router(source, [FakeSink()])
        r.run()
        assert r.state is RouterState.STOPPED
        assert r.stop_reason is StopReason.END_OF_DATA
        # Two chunks plus the read that reported end-of-data.
        assert source.reads == 3

    def test_empty_input_routes_nothing(self):
        sink = FakeSink()
        stats = Router(FakeSource([]), [sink]).run()
        assert sink.received == []
        assert stats.chunks == 0

    def test_chunk_size_passed_to_input(self, tmp_path):
        path = tmp_path / "in.bin"
        path.write_bytes(b"0123456789")
        sink = FakeSink()
        Router(FileSource(open(path, "rb")), [sink], chunk_size=4).run()
        assert sink.received == [b"0123", b"4567", b"89"]

    def test_step_returns_false_once_stopped(self):
        r = Router(FakeSource([b"x"]), [FakeSink()])
        assert r.step() is True
        assert r.step() is False
        assert r.step() is False

    def test_stats_per_output(self):
        sinks = [FakeSink(), FakeSink(fail_on={2})]
        stats = Router(FakeSource([b"aa", b"bbb", b"c"]), sinks).run()
        assert stats.outputs[0].bytes_written == 6
        assert stats.outputs[0].chunks_written == 3
        assert stats.outputs[1].bytes_written == 3
        assert stats.outputs[1].chunks_written == 2
        assert stats.outputs[1].failures == 1

    def test_stats_to_dict(self):
        stats = Router(FakeSource([b"abc"]), [FakeSink()]).run()
        assert stats.to_dict() == {
            "chunks": 1,
            "bytes_read": 3,
            "outputs": [
                {"bytes_written": 3, "chunks_written": 1, "failures": 0, "healthy": True}
            ],
        }


# ---------------------------------------------------------------------------
# Output failures
# ---------------------------------------------------------------------------


class TestOutputFailures:
    def test_failing_output_does_not_block_others(self):
        first, second, third = FakeSink(), FakeSink(fail_on={1}), FakeSink()
        r = Router(FakeSource([b"c1", b"c2"]), [first, second, third])
        r.run()
        assert first.received == [b"c1", b"c2"]
        assert second.received == [b"c2"]
        assert third.received == [b"c1", b"c2"]
        assert r.stop_reason is StopReason.END_OF_DATA

    def test_failure_recorded(self):
        r = Router(FakeSource([b"c1", b"c2"]), [FakeSink(), FakeSink(fail_on={1})])
        r.run()
        [failure] = r.failures
        assert failure.output_index == 1
        assert failure.chunk == 1
        assert "attempt 1" in str(failure.error)

    def test_failed_output_retried_and_recovers(self):
        r = Router(FakeSource([b"c1"]), [FakeSink(fail_on={1})])
        r.step()
        assert r.output_healthy(0) is False
        r.close()
        r = Router(FakeSource([b"c1", b"c2"]), [FakeSink(fail_on={1})])
        r.run()
        assert r.output_healthy(0) is True

    def test_always_failing_output(self):
        sink = FakeSink(fail_on={1, 2, 3})
        r = Router(FakeSource([b"a", b"b", b"c"]), [sink])
        stats = r.run()
        assert sink.attempts == 3
        assert stats.outputs[0].failures == 3
        assert stats.chunks == 3
        assert r.stop_reason is StopReason.END_OF_DATA

    def test_callback_invoked(self):
        seen: list[OutputFailure] = []
        Router(
            FakeSource([b"a", b"b"]),
            [FakeSink(fail_on={2})],
            on_output_error=seen.append,
        ).run()
        assert [(f.output_index, f.chunk) for f in seen] == [(0, 2)]

    def test_raising_callback_does_not_stop_delivery(self, caplog):
        def callback(failure):
            raise RuntimeError("callback broke")

        sinks = [FakeSink(fail_on={1}), FakeSink()]
        r = Router(FakeSource([b"c1", b"c2"]), sinks, on_output_error=callback)
        with caplog.at_level(logging.ERROR, logger="backplane.router"):
            r.run()
        assert sinks[1].received == [b"c1", b"c2"]
        assert sinks[0].received == [b"c2"]
        assert r.stop_reason is StopReason.END_OF_DATA
        assert "callback failed" in caplog.text

    def test_failure_logged(self, caplog):
        with caplog.at_level(logging.WARNING, logger="backplane.router"):
            Router(FakeSource([b"a"]), [FakeSink(fail_on={1})]).run()
        assert "failed on chunk 1" in caplog.text

    def test_failures_property_is_a_copy(self):
        r = Router(FakeSource([b"a"]), [FakeSink(fail_on={1})])
        r.run()
        r.failures.clear()
        assert len(r.failures) == 1


# ---------------------------------------------------------------------------
# Input failures
# ---------------------------------------------------------------------------


class TestInputFailures:
    def test_read_error_stops_router(self):
        source = FakeSource([b"a", ReadIOError("connection reset")])
        sinks = [FakeSink(), FakeSink()]
        r = Router(source, sinks)
        with pytest.raises(ReadIOError, match="connection reset"):
            r.run()
        assert r.state is RouterState.STOPPED
        assert r.stop_reason is StopReason.READ_ERROR
        assert sinks[0].received == [b"a"]

    def test_read_error_closes_endpoints(self):
        source = FakeSource([ReadIOError("boom")])
        sinks = [FakeSink(), FakeSink()]
        r = Router(source, sinks)
        with pytest.raises(ReadIOError):
            r.step()
        assert source.closed
        assert all(s.closed for s in sinks)

    def test_null_source_stops_with_read_error(self):
        sink = FakeSink()
        r = Router(NullSource(), [sink])
        with pytest.raises(InvalidStateError):
            r.run()
        assert r.stop_reason is StopReason.READ_ERROR
        assert sink.received == []
        assert sink.closed

    def test_step_after_read_error(self):
        r = Router(FakeSource([ReadIOError("boom")]), [FakeSink()])
        with pytest.raises(ReadIOError):
            r.step()
        assert r.step() is False


# ---------------------------------------------------------------------------
# Message-oriented input
# ---------------------------------------------------------------------------


class TestMessageOrientedInput:
    def test_empty_datagram_is_routed(self):
        sink = FakeSink()
        r = Router(FakeSource([b"", b"x"], message_oriented=True), [sink])
        assert r.step() is True
        assert r.step() is True
        assert sink.received == [b"", b"x"]
        assert r.state is RouterState.RUNNING
        r.close()

    def test_each_chunk_is_one_message(self):
        sink = FakeSink()
        r = Router(FakeSource([b"abc", b"de"], message_oriented=True), [sink], chunk_size=1)
        r.step()
        r.step()
        assert sink.received == [b"abc", b"de"]
        r.close()


# ---------------------------------------------------------------------------
# Teardown
# ---------------------------------------------------------------------------


class TestTeardown:
    def test_close_closes_every_endpoint_once(self):
        source = FakeSource([])
        sinks = [FakeSink(), FakeSink()]
        r = Router(source, sinks)
        r.close()
        r.close()
        assert source.close_calls == 1
        assert [s.close_calls for s in sinks] == [1, 1]

    def test_close_marks_stopped(self):
        r = Router(FakeSource([b"a"]), [FakeSink()])
        r.close()
        assert r.state is RouterState.STOPPED
        assert r.stop_reason is StopReason.CLOSED
        assert r.step() is False

    def test_close_errors_collected(self):
        sinks = [FakeSink(close_error=OSError("sink close")), FakeSink()]
        source = FakeSource([], close_error=OSError("source close"))
        r = Router(source, sinks)
        r.run()
        assert [str(e) for e in r.close_errors] == ["source close", "sink close"]
        assert sinks[1].closed
        assert r.stop_reason is StopReason.END_OF_DATA

    def test_close_error_does_not_mask_read_error(self):
        source = FakeSource([ReadIOError("boom")], close_error=OSError("close"))
        r = Router(source, [FakeSink()])
        with pytest.raises(ReadIOError):
            r.run()
        assert r.stop_reason is StopReason.READ_ERROR
        assert len(r.close_errors) == 1

    def test_context_manager(self):
        source = FakeSource([b"a"])
        with Router(source, [FakeSink()]) as r:
            r.step()
        assert source.closed
        assert r.state is RouterState.STOPPED

    def test_null_sink_output(self):
        r = Router(FakeSource([b"abc"]), [NullSink()])
        stats = r.run()
        assert stats.outputs[0].bytes_written == 3

    def test_close_from_another_thread_unblocks_tcp_read(self, tcp_pair):
        accepted, _client = tcp_pair
        sink = FakeSink()
        r = Router(TcpSource(accepted), [sink])
        call = BackgroundCall(r.run)
        assert call.still_running(after=0.2)
        r.close()
        stats = call.join()
        assert stats.chunks == 0
        assert r.stop_reason is StopReason.CLOSED
        assert sink.closed


# ---------------------------------------------------------------------------
# Building from descriptors
# ---------------------------------------------------------------------------


class TestFromDescriptors:
    def test_file_to_file(self, tmp_path):
        src = tmp_path / "in.bin"
        src.write_bytes(bytes(range(200)) * 50)
        out_a, out_b = tmp_path / "a.bin", tmp_path / "b.bin"
        r = Router.from_descriptors(
            f"file:{src}", [file_endpoint(str(out_a)), f"file:{out_b}"], chunk_size=333
        )
        stats = r.run()
        assert out_a.read_bytes() == src.read_bytes()
        assert out_b.read_bytes() == src.read_bytes()
        assert stats.bytes_read == 10000
        assert stats.chunks == 31

    def test_file_to_udp(self, tmp_path, udp_socket):
        src = tmp_path / "in.bin"
        src.write_bytes(b"0123456789")
        host, port = udp_socket.getsockname()
        Router.from_descriptors(f"file:{src}", [udp_endpoint(host, port)], chunk_size=4).run()
        assert [udp_socket.recv(65535) for _ in range(3)] == [b"0123", b"4567", b"89"]

    def test_requires_an_output(self, tmp_path):
        with pytest.raises(ValueError):
            Router.from_descriptors(f"file:{tmp_path / 'in.bin'}", [])

    def test_input_open_failure(self, tmp_path):
        with pytest.raises(EndpointNotFoundError):
            Router.from_descriptors(
                f"file:{tmp_path / 'missing.bin'}", [f"file:{tmp_path / 'out.bin'}"]
            )
        assert not (tmp_path / "out.bin").exists()

    def test_opened_endpoints_closed_on_failure(self, monkeypatch):
        source = FakeSource([])
        first = FakeSink()

        def fake_open_output(descriptor):
            if descriptor == "ok":
                return first
            raise ConnectError(None, "refused")

        monkeypatch.setattr(router_module, "open_input", lambda descriptor: source)
        monkeypatch.setattr(router_module, "open_output", fake_open_output)
        with pytest.raises(ConnectError):
            Router.from_descriptors("in", ["ok", "bad"])
        assert source.closed
        assert first.closed

    def test_real_connect_failure_closes_input(self, tmp_path):
        src = tmp_path / "in.bin"
        src.write_bytes(b"data")
        with pytest.raises(ConnectError):
            Router.from_descriptors(
                f"file:{src}",
                [f"file:{tmp_path / 'out.bin'}", f"tcp_client:127.0.0.1:{free_port()}"],
            )
        assert (tmp_path / "out.bin").read_bytes() == b""


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


class TestConcurrentRouters:
    def test_independent_routers_on_threads(self, tmp_path):
        calls = []
        for i in range(4):
            src = tmp_path / f"in{i}.bin"
            src.write_bytes(bytes([i]) * 5000)
            r = Router.from_descriptors(
                f"file:{src}", [f"file:{tmp_path / f'out{i}.bin'}"], chunk_size=64
            )
            calls.append(BackgroundCall(r.run))
        for i, call in enumerate(calls):
            assert call.join().bytes_read == 5000
            assert (tmp_path / f"out{i}.bin").read_bytes() == bytes([i]) * 5000
