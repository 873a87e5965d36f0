import contextlib
import errno
import logging
import serial
import threading
import typing

import pydantic

from ok_print_bridge import _exceptions
from ok_print_bridge import _locking
from ok_print_bridge import _timeout_math

log = logging.getLogger("ok_print_bridge.link")
data_log = logging.getLogger(log.name + ".data")

LinkState = typing.Literal["closed", "opening", "open"]

JOIN_TIMEOUT = 5.0


class LinkOptions(pydantic.BaseModel):
    baud: int = 9600
    sharing: _locking.SharingType = "exclusive"
    write_timeout: float | None = None
    close_drain_timeout: float = 2.0


class LinkStatus(typing.NamedTuple):
    path: str
    baud: int
    state: LinkState

    @property
    def is_open(self) -> bool:
        return self.state == "open"


class SerialLink(contextlib.AbstractContextManager):
    """
    The one serial connection to the printer.

    State moves closed -> opening -> open -> closed. Open, close and write
    take turns on one mutex, so a close issued while opening waits for the
    attempt and then releases it. Writes wait for the bytes to be flushed,
    and an I/O error seen by the background threads (for example
    the device being unplugged) drops the link back to closed.
    """

    def __init__(self, path: str, opts: LinkOptions | int = LinkOptions()):
        if isinstance(opts, int):
            opts = LinkOptions(baud=opts)

        self._opts = opts
        self._lock = threading.Lock()  # guards the fields below
        self._op_lock = threading.Lock()  # held across open, close, write
        self._path = path
        self._baud = opts.baud
        self._state: LinkState = "closed"
        self._io: _LinkIo | None = None
        self._cleanup: contextlib.ExitStack | None = None

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"SerialLink({self._path!r}, {self._opts!r})"

    def status(self) -> LinkStatus:
        with self._lock:
            return LinkStatus(self._path, self._baud, self._state)

    @pydantic.validate_call
    def open(
        self, path: str | None = None, baud: int | None = None
    ) -> LinkStatus:
        if (status := self.status()).state != "closed":
            log.debug("%s already %s", status.path, status.state)
            return status

        with self._op_lock:
            with self._lock:
                if self._state != "closed":
                    return LinkStatus(self._path, self._baud, self._state)
                path, baud = path or self._path, baud or self._baud
                self._state = "opening"

            log.info("Opening %s @ %d baud", path, baud)
            try:
                cleanup, io = self._acquire(path, baud)
            except BaseException:
                with self._lock:
                    self._state = "closed"
                raise

            with self._lock:
                self._path, self._baud = path, baud
                self._io, self._cleanup = io, cleanup
                self._state = "open"
                io.start()

        log.info("Opened %s @ %d baud", path, baud)
        return self.status()

    def close(self) -> None:
        """Releases the device, waiting out any open or write in progress"""

        with self._op_lock:
            self._close_locked(drain=True)

    def write(self, data: bytes, command: str = "write") -> int:
        """Sends 'data' and waits until it is flushed; returns the byte count"""

        if (status := self.status()).state != "open":
            message = f"Serial link is {status.state}"
            raise _exceptions.NotOpen(message, status.path)

        with self._op_lock:
            with self._lock:
                io, path = self._io, self._path
                if self._state != "open" or io is None:
                    message = f"Serial link is {self._state}"
                    raise _exceptions.NotOpen(message, path)

            log.debug("%s: %db -> %s", command, len(data), path)
            try:
                mark = io.send(data)
                timeout = self._opts.write_timeout
                if io.wait_written(mark, timeout=timeout):
                    return len(data)
            except _exceptions.LinkDisconnected as ex:
                self._on_lost(io, ex)
                message = f"Link lost during {command}"
                raise _exceptions.LinkDisconnected(message, path) from ex

            log.warning("%s: flush took over %.1fs, closing", command, timeout)
            self._close_locked(drain=False)
            message = f"{command} not flushed within {timeout}s"
            raise _exceptions.WriteTimeout(message, path)

    def _acquire(
        self, path: str, baud: int
    ) -> tuple[contextlib.ExitStack, "_LinkIo"]:
        with contextlib.ExitStack() as cleanup:
            sharing = self._opts.sharing
            cleanup.enter_context(_locking.using_lock_file(path, sharing))

            try:
                pyserial = cleanup.enter_context(
                    serial.Serial(port=path, baudrate=baud, write_timeout=0.1)
                )
            except OSError as ex:
                if ex.errno == errno.EBUSY:
                    message = "Serial port busy (EBUSY)"
                    raise _exceptions.LinkBusy(message, path) from ex
                message = f"Serial port open error ({ex})"
                raise _exceptions.LinkOpenFailed(message, path) from ex
            except ValueError as ex:
                message = f"Bad serial parameters ({ex})"
                raise _exceptions.LinkOpenFailed(message, path) from ex

            if hasattr(pyserial, "fileno"):
                fd = pyserial.fileno()
                cleanup.enter_context(_locking.using_fd_lock(path, fd, sharing))

            io = cleanup.enter_context(_LinkIo(pyserial, self._on_lost))
            return cleanup.pop_all(), io

    def _close_locked(self, drain: bool) -> None:
        """Must be run with self._op_lock held."""

        with self._lock:
            io, cleanup, path = self._io, self._cleanup, self._path
            self._io = self._cleanup = None
            if self._state == "open":
                self._state = "closed"

        if not (io and cleanup):
            log.debug("%s already closed", path)
            return

        if drain:
            timeout = self._opts.close_drain_timeout
            try:
                io.wait_written(io.queued, timeout=timeout)
            except _exceptions.LinkDisconnected:
                log.debug("%s lost before drain", path)

        try:
            cleanup.close()
        except OSError:
            log.warning("Error closing %s", path, exc_info=True)
        log.info("Closed %s", path)

    def _on_lost(self, io: "_LinkIo", exc: BaseException) -> None:
        with self._lock:
            if self._io is not io:
                return
            cleanup, path = self._cleanup, self._path
            self._io = self._cleanup = None
            self._state = "closed"

        log.warning("%s disconnected (%s)", path, exc.__cause__ or exc)
        if cleanup:
            try:
                cleanup.close()
            except OSError:
                log.warning("Error releasing %s", path, exc_info=True)


class _LinkIo(contextlib.AbstractContextManager):
    def __init__(
        self,
        pyserial,
        on_lost: typing.Callable[["_LinkIo", BaseException], None],
    ) -> None:
        self.threads: list[threading.Thread] = []
        self.pyserial = pyserial
        self.on_lost = on_lost
        self.monitor = threading.Condition()
        self.outgoing = bytearray()
        self.queued = 0  # total bytes ever accepted
        self.written = 0  # total bytes written and flushed
        self.exception: None | _exceptions.LinkDisconnected = None

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.stop()

    def start(self) -> None:
        for t, n in ((self._readloop, "reader"), (self._writeloop, "writer")):
            port = self.pyserial.port
            thread = threading.Thread(target=t, name=f"{port} {n}", daemon=True)
            thread.start()
            self.threads.append(thread)

    def stop(self) -> None:
        with self.monitor:
            if not self.exception:
                message, port = "Serial link was closed", self.pyserial.port
                self.exception = _exceptions.LinkDisconnected(message, port)
            self.monitor.notify_all()

        try:
            self.pyserial.cancel_read()
            self.pyserial.cancel_write()
            log.debug("Cancelled %s I/O", self.pyserial.port)
        except OSError:
            port = self.pyserial.port
            log.warning("Can't cancel %s I/O", port, exc_info=True)

        log.debug("Joining %s I/O threads", self.pyserial.port)
        for thr in self.threads:
            if thr is not threading.current_thread():
                thr.join(timeout=JOIN_TIMEOUT)
                if thr.is_alive():
                    log.warning("%s still busy, abandoning it", thr.name)

    def send(self, data: bytes) -> int:
        """Queues 'data'; returns the 'written' mark that means it's flushed"""

        with self.monitor:
            if self.exception:
                raise self.exception
            if data:
                self.outgoing.extend(data)
                self.queued += len(data)
                self.monitor.notify_all()
            return self.queued

    def wait_written(self, mark: int, timeout: float | int | None) -> bool:
        deadline = _timeout_math.to_deadline(timeout)
        while True:
            with self.monitor:
                if self.written >= mark:
                    return True
                elif self.exception:
                    raise self.exception
                else:
                    wait = _timeout_math.from_deadline(deadline)
                    if wait <= 0:
                        return False
                    self.monitor.wait(timeout=wait)

    def _fail_locked(
        self, message: str, cause: OSError
    ) -> _exceptions.LinkDisconnected | None:
        """Must be run with self.monitor lock held."""

        if self.exception:
            return None
        error = _exceptions.LinkDisconnected(message, self.pyserial.port)
        error.__cause__ = cause
        self.exception = error
        self.monitor.notify_all()
        return error

    def _readloop(self) -> None:
        log.debug("Starting thread")
        while not self.exception:
            incoming, cause = b"", None
            try:
                # Block for at least one byte, then grab all available
                incoming = self.pyserial.read(size=1)
                if incoming:
                    waiting = self.pyserial.in_waiting
                    if waiting > 0:
                        incoming += self.pyserial.read(size=waiting)
            except OSError as ex:
                cause = ex
                data_log.warning("Serial read error", exc_info=True)

            if incoming:
                n, hex = len(incoming), incoming.hex()
                data_log.debug("Printer sent %db: %s", n, hex)

            lost = None
            if cause:
                with self.monitor:
                    lost = self._fail_locked("Serial read error", cause)
            if lost:
                self.on_lost(self, lost)

    def _writeloop(self) -> None:
        log.debug("Starting thread")

        # Avoid blocking on writes to avoid pyserial bugs:
        # https://github.com/pyserial/pyserial/issues/280
        # https://github.com/pyserial/pyserial/issues/281
        chunk = b""
        while not self.exception:
            cause = None
            if chunk:
                try:
                    self.pyserial.write(chunk)
                    self.pyserial.flush()
                except OSError as ex:
                    cause = ex
                    data_log.warning("Serial write error", exc_info=True)

            lost = None
            with self.monitor:
                if cause:
                    lost = self._fail_locked("Serial write error", cause)
                elif chunk:
                    del self.outgoing[: len(chunk)]
                    self.written += len(chunk)
                    data_log.debug(
                        "Wrote %db, %db pending", len(chunk), len(self.outgoing)
                    )
                    self.monitor.notify_all()
                while not self.exception and not self.outgoing:
                    self.monitor.wait()
                chunk = bytes(self.outgoing[:256])

            if lost:
                self.on_lost(self, lost)
