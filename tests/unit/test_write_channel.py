"""Tests for ResumableWriteChannel.

Covers chunked flushing, close-time finalization, capture/restore and the
error paths of the channel state machine against a recording fake RPC.
"""

from __future__ import annotations

import threading

import pytest

from upload_channel.const import DEFAULT_CHUNK_SIZE, MIN_CHUNK_SIZE
from upload_channel.exceptions import (
    ChannelClosedError,
    ChunkSizeLockedError,
    RestoreError,
    TransportError,
)
from upload_channel.state import ChunkedUploadState
from upload_channel.write_channel import ResumableWriteChannel, align_chunk_size

UPLOAD_ID = "uploadid"
CUSTOM_CHUNK_SIZE = 4 * MIN_CHUNK_SIZE


@pytest.fixture
def writer(rpc, configuration) -> ResumableWriteChannel:
    return ResumableWriteChannel.create(rpc, configuration)


def test_create(rpc, configuration) -> None:
    writer = ResumableWriteChannel.create(rpc, configuration)

    assert writer.is_open
    assert writer.session_id == UPLOAD_ID
    assert writer.position == 0
    assert writer.chunk_size == DEFAULT_CHUNK_SIZE
    assert rpc.open_calls == [configuration]
    assert rpc.flushes == []


def test_create_fails_when_open_fails(rpc, configuration) -> None:
    rpc.open_error = TransportError("unavailable", status_code=503)

    with pytest.raises(TransportError):
        ResumableWriteChannel.create(rpc, configuration)

    assert rpc.flushes == []


def test_write_without_flush(writer, rpc) -> None:
    assert writer.write(bytes(MIN_CHUNK_SIZE)) == MIN_CHUNK_SIZE
    assert writer.buffered == MIN_CHUNK_SIZE
    assert rpc.flushes == []


def test_write_empty_input(writer, rpc) -> None:
    assert writer.write(b"") == 0
    assert rpc.flushes == []
    assert writer.buffered == 0


def test_write_with_flush(writer, rpc, random_bytes) -> None:
    writer.chunk_size = CUSTOM_CHUNK_SIZE
    data = random_bytes(CUSTOM_CHUNK_SIZE)

    assert writer.write(data) == CUSTOM_CHUNK_SIZE

    assert len(rpc.flushes) == 1
    flush = rpc.flushes[0]
    assert flush.session_id == UPLOAD_ID
    assert flush.data == data
    assert flush.offset == 0
    assert flush.position == 0
    assert flush.length == CUSTOM_CHUNK_SIZE
    assert flush.last is False
    assert writer.position == CUSTOM_CHUNK_SIZE
    assert writer.buffered == 0


def test_writes_and_flush(writer, rpc, random_bytes) -> None:
    buffers = [random_bytes(MIN_CHUNK_SIZE) for _ in range(8)]
    for buffer in buffers:
        assert writer.write(buffer) == MIN_CHUNK_SIZE

    assert len(rpc.flushes) == 1
    flushed = rpc.flushes[0]
    assert flushed.length == DEFAULT_CHUNK_SIZE
    assert flushed.position == 0
    for i, buffer in enumerate(buffers):
        assert flushed.data[MIN_CHUNK_SIZE * i : MIN_CHUNK_SIZE * (i + 1)] == buffer
    assert writer.buffered == 0


def test_ninth_write_then_close_flushes_remainder(writer, rpc, random_bytes) -> None:
    for _ in range(8):
        writer.write(random_bytes(MIN_CHUNK_SIZE))
    tail = random_bytes(MIN_CHUNK_SIZE)
    writer.write(tail)
    writer.close()

    assert [(f.position, f.length, f.last) for f in rpc.flushes] == [
        (0, DEFAULT_CHUNK_SIZE, False),
        (DEFAULT_CHUNK_SIZE, MIN_CHUNK_SIZE, True),
    ]
    assert rpc.flushes[1].data == tail


def test_large_write_triggers_several_flushes(writer, rpc, random_bytes) -> None:
    data = random_bytes(3 * DEFAULT_CHUNK_SIZE + 10)

    assert writer.write(data) == len(data)

    assert [(f.position, f.length) for f in rpc.flushes] == [
        (0, DEFAULT_CHUNK_SIZE),
        (DEFAULT_CHUNK_SIZE, DEFAULT_CHUNK_SIZE),
        (2 * DEFAULT_CHUNK_SIZE, DEFAULT_CHUNK_SIZE),
    ]
    assert writer.buffered == 10
    assert rpc.committed == data[: 3 * DEFAULT_CHUNK_SIZE]


@pytest.mark.parametrize("granules", [1, 2, 4, 8])
@pytest.mark.parametrize("chunks", [1, 3])
def test_exact_multiple_flushes_and_empty_final(
    rpc, configuration, random_bytes, granules: int, chunks: int
) -> None:
    writer = ResumableWriteChannel.create(rpc, configuration)
    writer.chunk_size = granules * MIN_CHUNK_SIZE
    data = random_bytes(chunks * writer.chunk_size)

    # Uneven write sizes still land on chunk boundaries
    step = MIN_CHUNK_SIZE // 3
    for start in range(0, len(data), step):
        writer.write(data[start : start + step])
    writer.close()

    interior = [f for f in rpc.flushes if not f.last]
    final = [f for f in rpc.flushes if f.last]
    assert len(interior) == chunks
    assert [f.position for f in interior] == [
        i * writer.chunk_size for i in range(chunks)
    ]
    assert len(final) == 1
    assert final[0].length == 0
    assert final[0].data == b""
    assert final[0].position == len(data)
    assert rpc.committed == data


def test_close_without_flush(writer, rpc) -> None:
    assert writer.is_open

    writer.close()

    assert len(rpc.flushes) == 1
    flush = rpc.flushes[0]
    assert flush.data == b""
    assert (flush.position, flush.length, flush.last) == (0, 0, True)
    assert not writer.is_open


def test_close_with_flush(writer, rpc, random_bytes) -> None:
    data = random_bytes(MIN_CHUNK_SIZE)
    writer.write(data)

    writer.close()

    assert len(rpc.flushes) == 1
    flush = rpc.flushes[0]
    assert flush.data == data
    assert (flush.position, flush.length, flush.last) == (0, MIN_CHUNK_SIZE, True)
    assert not writer.is_open
    assert writer.position == 0


def test_close_twice_is_noop(writer, rpc) -> None:
    writer.close()
    writer.close()

    assert len(rpc.flushes) == 1


def test_write_closed(writer, rpc) -> None:
    writer.close()

    with pytest.raises(ChannelClosedError):
        writer.write(bytes(MIN_CHUNK_SIZE))

    assert len(rpc.flushes) == 1


def test_chunk_size_rounds_down_to_granularity(writer) -> None:
    writer.chunk_size = 3 * MIN_CHUNK_SIZE + 100
    assert writer.chunk_size == 3 * MIN_CHUNK_SIZE

    writer.chunk_size = 10
    assert writer.chunk_size == MIN_CHUNK_SIZE


def test_align_chunk_size() -> None:
    assert align_chunk_size(MIN_CHUNK_SIZE) == MIN_CHUNK_SIZE
    assert align_chunk_size(2 * MIN_CHUNK_SIZE - 1) == MIN_CHUNK_SIZE
    assert align_chunk_size(0) == MIN_CHUNK_SIZE


def test_chunk_size_locked_after_buffering(writer) -> None:
    writer.write(b"abc")

    with pytest.raises(ChunkSizeLockedError):
        writer.chunk_size = CUSTOM_CHUNK_SIZE
    assert writer.chunk_size == DEFAULT_CHUNK_SIZE


def test_chunk_size_locked_after_flush(writer) -> None:
    writer.write(bytes(DEFAULT_CHUNK_SIZE))
    assert writer.buffered == 0

    with pytest.raises(ChunkSizeLockedError):
        writer.chunk_size = CUSTOM_CHUNK_SIZE


def test_chunk_size_on_closed_channel(writer) -> None:
    writer.close()

    with pytest.raises(ChannelClosedError):
        writer.chunk_size = CUSTOM_CHUNK_SIZE


def test_failed_flush_keeps_buffer_and_position(writer, rpc, random_bytes) -> None:
    first = random_bytes(DEFAULT_CHUNK_SIZE)
    writer.write(first)
    rpc.failures.append(TransportError("boom", status_code=503))
    data = random_bytes(DEFAULT_CHUNK_SIZE + 5)

    with pytest.raises(TransportError) as exc_info:
        writer.write(data)

    assert exc_info.value.bytes_written == DEFAULT_CHUNK_SIZE
    assert writer.is_open
    assert writer.position == DEFAULT_CHUNK_SIZE
    assert writer.buffered == DEFAULT_CHUNK_SIZE
    assert len(rpc.flushes) == 1

    writer.write(data[exc_info.value.bytes_written :])
    writer.close()

    assert rpc.committed == first + data
    assert [(f.position, f.length, f.last) for f in rpc.flushes] == [
        (0, DEFAULT_CHUNK_SIZE, False),
        (DEFAULT_CHUNK_SIZE, DEFAULT_CHUNK_SIZE, False),
        (2 * DEFAULT_CHUNK_SIZE, 5, True),
    ]


def test_non_transport_error_propagates_unchanged(writer, rpc) -> None:
    error = ConnectionResetError("reset")
    rpc.failures.append(error)

    with pytest.raises(ConnectionResetError) as exc_info:
        writer.write(bytes(DEFAULT_CHUNK_SIZE))

    assert exc_info.value is error
    assert writer.buffered == DEFAULT_CHUNK_SIZE
    assert writer.position == 0


def test_interrupted_flush_keeps_buffer_and_position(
    writer, rpc, random_bytes
) -> None:
    data = random_bytes(DEFAULT_CHUNK_SIZE)
    rpc.failures.append(KeyboardInterrupt())

    with pytest.raises(KeyboardInterrupt):
        writer.write(data)

    state = writer.capture()
    assert state.is_open
    assert state.position == 0
    assert state.buffer == data

    resumed = state.restore(rpc)
    resumed.close()

    assert [(f.position, f.length, f.last) for f in rpc.flushes] == [
        (0, DEFAULT_CHUNK_SIZE, False),
        (DEFAULT_CHUNK_SIZE, 0, True),
    ]
    assert rpc.committed == data


def test_interrupted_close_keeps_buffer(writer, rpc) -> None:
    writer.write(b"tail")
    rpc.failures.append(KeyboardInterrupt())

    with pytest.raises(KeyboardInterrupt):
        writer.close()

    assert writer.is_open
    assert writer.capture().buffer == b"tail"


def test_failed_close_leaves_channel_open(writer, rpc, random_bytes) -> None:
    data = random_bytes(100)
    writer.write(data)
    rpc.failures.append(TransportError("boom"))

    with pytest.raises(TransportError):
        writer.close()

    assert writer.is_open
    assert writer.buffered == 100

    writer.close()

    assert not writer.is_open
    assert rpc.flushes[-1].data == data
    assert rpc.flushes[-1].last is True


def test_close_after_failed_interior_flush(writer, rpc, random_bytes) -> None:
    data = random_bytes(DEFAULT_CHUNK_SIZE)
    rpc.failures.append(TransportError("boom"))
    with pytest.raises(TransportError):
        writer.write(data)

    writer.close()

    assert [(f.position, f.length, f.last) for f in rpc.flushes] == [
        (0, DEFAULT_CHUNK_SIZE, False),
        (DEFAULT_CHUNK_SIZE, 0, True),
    ]
    assert rpc.committed == data


def test_progress_callback_reports_flushed_bytes(rpc, configuration) -> None:
    progress: list[int] = []
    writer = ResumableWriteChannel.create(rpc, configuration, progress.append)

    writer.write(bytes(DEFAULT_CHUNK_SIZE + 7))
    writer.close()

    assert progress == [DEFAULT_CHUNK_SIZE, 7]


def test_failing_progress_callback_does_not_break_accounting(
    rpc, configuration, random_bytes
) -> None:
    def report(length: int) -> None:
        raise ValueError("I/O operation on closed file")

    writer = ResumableWriteChannel.create(rpc, configuration, report)
    data = random_bytes(2 * DEFAULT_CHUNK_SIZE + 3)

    assert writer.write(data) == len(data)
    writer.close()

    assert not writer.is_open
    assert rpc.committed == data
    assert [(f.position, f.length, f.last) for f in rpc.flushes] == [
        (0, DEFAULT_CHUNK_SIZE, False),
        (DEFAULT_CHUNK_SIZE, DEFAULT_CHUNK_SIZE, False),
        (2 * DEFAULT_CHUNK_SIZE, 3, True),
    ]


def test_context_manager_closes_on_success(rpc, configuration) -> None:
    with ResumableWriteChannel.create(rpc, configuration) as writer:
        writer.write(b"payload")

    assert not writer.is_open
    assert rpc.flushes[-1].last is True


def test_context_manager_leaves_open_on_error(rpc, configuration) -> None:
    with pytest.raises(RuntimeError):
        with ResumableWriteChannel.create(rpc, configuration) as writer:
            writer.write(b"payload")
            raise RuntimeError("interrupted")

    assert writer.is_open
    assert rpc.flushes == []


def test_save_and_restore(writer, rpc, random_bytes) -> None:
    buffer1 = random_bytes(DEFAULT_CHUNK_SIZE)
    buffer2 = random_bytes(DEFAULT_CHUNK_SIZE)

    assert writer.write(buffer1) == DEFAULT_CHUNK_SIZE
    assert rpc.flushes[0].data == buffer1
    assert rpc.flushes[0].position == 0

    state = writer.capture()
    restored = state.restore(rpc)
    assert restored.write(buffer2) == DEFAULT_CHUNK_SIZE

    assert rpc.flushes[1].data == buffer2
    assert rpc.flushes[1].position == DEFAULT_CHUNK_SIZE
    assert len(rpc.open_calls) == 1


def test_restore_after_chunk_then_close(writer, rpc, random_bytes) -> None:
    writer.write(random_bytes(DEFAULT_CHUNK_SIZE))
    restored = ResumableWriteChannel.restore(writer.capture(), rpc)
    tail = random_bytes(MIN_CHUNK_SIZE)

    restored.write(tail)
    restored.close()

    final = rpc.flushes[-1]
    assert (final.position, final.length, final.last) == (
        DEFAULT_CHUNK_SIZE,
        MIN_CHUNK_SIZE,
        True,
    )
    assert final.data == tail


def test_restore_matches_original_flush_sequence(
    rpc, configuration, random_bytes
) -> None:
    head = random_bytes(DEFAULT_CHUNK_SIZE + 1000)
    tail = random_bytes(2 * DEFAULT_CHUNK_SIZE + 17)
    original = ResumableWriteChannel.create(rpc, configuration)
    original.write(head)
    state = original.capture()

    original.write(tail)
    original.close()

    restored_rpc = type(rpc)()
    restored = state.restore(restored_rpc)
    restored.write(tail)
    restored.close()

    assert restored_rpc.flushes == rpc.flushes[1:]


def test_save_and_restore_closed(writer, rpc, configuration) -> None:
    writer.close()
    state = writer.capture()
    expected = ChunkedUploadState(
        configuration=configuration,
        session_id=UPLOAD_ID,
        buffer=None,
        chunk_size=DEFAULT_CHUNK_SIZE,
        position=0,
        is_open=False,
    )

    restored = state.restore(rpc)

    assert rpc.flushes[0].data == b""
    assert restored.capture() == expected
    with pytest.raises(ChannelClosedError):
        restored.write(b"x")


def test_capture_copies_buffered_bytes(writer) -> None:
    writer.write(b"abc")
    state = writer.capture()
    writer.write(b"def")

    assert state.buffer == b"abc"
    assert writer.capture().buffer == b"abcdef"


def test_state_equals(rpc, configuration) -> None:
    # Equal only because the fake endpoint hands out the same session id
    writer = ResumableWriteChannel.create(rpc, configuration)
    writer2 = ResumableWriteChannel.create(rpc, configuration)

    state = writer.capture()
    state2 = writer2.capture()

    assert state == state2
    assert hash(state) == hash(state2)
    assert str(state) == str(state2)


def test_states_differ_with_distinct_sessions(rpc, configuration) -> None:
    writer = ResumableWriteChannel.create(rpc, configuration)
    rpc.session_id = "another-upload"
    writer2 = ResumableWriteChannel.create(rpc, configuration)

    assert writer.capture() != writer2.capture()


def test_restore_rejects_inconsistent_state(rpc, configuration) -> None:
    state = ChunkedUploadState(
        configuration=configuration,
        session_id=UPLOAD_ID,
        buffer=b"leftover",
        chunk_size=DEFAULT_CHUNK_SIZE,
        position=0,
        is_open=False,
    )

    with pytest.raises(RestoreError):
        ResumableWriteChannel.restore(state, rpc)


def test_concurrent_writes_are_serialized(writer, rpc) -> None:
    block = bytes(MIN_CHUNK_SIZE)

    def _write() -> None:
        for _ in range(4):
            writer.write(block)

    threads = [threading.Thread(target=_write) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    writer.close()

    assert [(f.position, f.length) for f in rpc.flushes if not f.last] == [
        (0, DEFAULT_CHUNK_SIZE),
        (DEFAULT_CHUNK_SIZE, DEFAULT_CHUNK_SIZE),
    ]
    assert rpc.flushes[-1].length == 0
