import contextlib
import errno
import io
import json
import ok_logging_setup
import os
import pty
import pytest
import threading
import time
import typing

import serial

from ok_print_bridge import _link

ok_logging_setup.install(
    {
        "OK_LOGGING_LEVEL": "ok_print_bridge=DEBUG,WARNING",
        "OK_LOGGING_OUTPUT": "stdout",
    }
)

FAKE_PATH = "/dev/ttyFAKE0"


class PseudoTtySerial(typing.NamedTuple):
    path: str
    control: io.FileIO
    simulated: io.FileIO


@pytest.fixture
def pty_serial():
    with contextlib.ExitStack() as cleanup:
        ctrl_fd, sim_fd = pty.openpty()
        path = os.ttyname(sim_fd)
        ctrl = cleanup.enter_context(os.fdopen(ctrl_fd, "r+b", buffering=0))
        sim = cleanup.enter_context(os.fdopen(sim_fd, "r+b", buffering=0))
        yield PseudoTtySerial(path=path, control=ctrl, simulated=sim)


@pytest.fixture
def set_scan_override(monkeypatch, tmp_path):
    path = tmp_path / "scan.json"
    path.write_text("{}")
    monkeypatch.setenv("OK_PRINT_BRIDGE_SCAN_OVERRIDE", str(path))

    def set_ports(ports: dict[str, dict[str, str]]):
        path.write_text(json.dumps(ports))

    return set_ports


class FakeSerial:
    """Stand-in for serial.Serial that records output and can fail on cue"""

    def __init__(self, port: str, baudrate: int):
        self.port = port
        self.baudrate = baudrate
        self.is_open = True
        self.written = bytearray()
        self.flush_gate = threading.Event()  # clear it to stall flush()
        self.flush_gate.set()
        self.error: OSError | None = None
        self._read_wake = threading.Event()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()

    def close(self):
        self.is_open = False
        self._read_wake.set()
        self.flush_gate.set()

    @property
    def in_waiting(self) -> int:
        return 0

    def read(self, size: int = 1) -> bytes:
        self._read_wake.wait()
        if self.error:
            raise self.error
        self._read_wake.clear()
        return b""

    def write(self, data: bytes) -> int:
        if self.error:
            raise self.error
        self.written.extend(data)
        return len(data)

    def flush(self) -> None:
        self.flush_gate.wait()
        if self.error:
            raise self.error

    def cancel_read(self) -> None:
        self._read_wake.set()

    def cancel_write(self) -> None:
        self.flush_gate.set()

    def unplug(self) -> None:
        self.error = serial.SerialException(errno.EIO, "Input/output error")
        self._read_wake.set()
        self.flush_gate.set()


class FakeSerialPorts:
    def __init__(self):
        self.opened: list[FakeSerial] = []
        self.open_error: OSError | None = None
        self.open_gate = threading.Event()  # clear it to stall opening
        self.open_gate.set()
        self.attempts = 0

    def __call__(self, port: str, baudrate: int, **kwargs) -> FakeSerial:
        self.attempts += 1
        self.open_gate.wait()
        if self.open_error:
            raise self.open_error
        fake = FakeSerial(port, baudrate)
        self.opened.append(fake)
        return fake

    @property
    def last(self) -> FakeSerial:
        return self.opened[-1]


@pytest.fixture
def fake_serial(mocker):
    ports = FakeSerialPorts()
    mocker.patch("serial.Serial", side_effect=ports)
    return ports


@pytest.fixture
def link(fake_serial):
    opts = _link.LinkOptions(baud=9600, sharing="oblivious")
    with _link.SerialLink(FAKE_PATH, opts) as link:
        yield link


def wait_for(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            return False
        time.sleep(0.01)
    return True
