from __future__ import annotations

import os
from dataclasses import dataclass, field

import pytest

from upload_channel.configuration import UploadConfiguration
from upload_channel.rpc.upload_rpc import UploadRpc

UPLOAD_ID = "uploadid"

LOAD_CONFIGURATION = UploadConfiguration(
    destination="dataset/table",
    content_type="application/json",
    metadata={"writeDisposition": "WRITE_APPEND"},
)


@dataclass
class FlushCall:
    session_id: str
    data: bytes
    offset: int
    position: int
    length: int
    last: bool


@dataclass
class FakeUploadRpc(UploadRpc):
    """Records every call; ``failures`` are raised by the next writes in order."""

    session_id: str = UPLOAD_ID
    open_calls: list[UploadConfiguration] = field(default_factory=list)
    flushes: list[FlushCall] = field(default_factory=list)
    failures: list[BaseException] = field(default_factory=list)
    open_error: Exception | None = None

    def open(self, configuration: UploadConfiguration) -> str:
        self.open_calls.append(configuration)
        if self.open_error is not None:
            raise self.open_error
        return self.session_id

    def write(
        self,
        session_id: str,
        buffer: bytes,
        offset: int,
        position: int,
        length: int,
        last: bool,
    ) -> None:
        if self.failures:
            raise self.failures.pop(0)
        self.flushes.append(
            FlushCall(
                session_id=session_id,
                data=bytes(buffer[offset : offset + length]),
                offset=offset,
                position=position,
                length=length,
                last=last,
            )
        )

    @property
    def committed(self) -> bytes:
        return b"".join(call.data for call in self.flushes)


@pytest.fixture
def rpc() -> FakeUploadRpc:
    return FakeUploadRpc()


@pytest.fixture
def configuration() -> UploadConfiguration:
    return LOAD_CONFIGURATION


@pytest.fixture
def random_bytes():
    def _make(size: int) -> bytes:
        return os.urandom(size)

    return _make

