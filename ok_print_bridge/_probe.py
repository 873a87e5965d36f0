import contextlib
import logging
import threading
import typing

from ok_print_bridge import _exceptions
from ok_print_bridge import _link
from ok_print_bridge import _scanning

log = logging.getLogger("ok_print_bridge.probe")


class ProbeOptions(typing.NamedTuple):
    interval: float | int = 3.0


class LinkProber(contextlib.AbstractContextManager):
    """Background loop that opens the link whenever its device shows up"""

    def __init__(
        self,
        link: _link.SerialLink,
        path: str,
        baud: int,
        opts: ProbeOptions = ProbeOptions(),
    ):
        self._link = link
        self._path = path
        self._baud = baud
        self._opts = opts
        self._stopping = threading.Event()
        self._thread: threading.Thread | None = None

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.stop()

    def __repr__(self) -> str:
        return f"LinkProber({self._path!r}, {self._baud}, {self._opts!r})"

    def start(self) -> None:
        if self._thread:
            return
        self._stopping.clear()
        self._thread = threading.Thread(
            target=self._loop, name=f"{self._path} prober", daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        self._stopping.set()
        if self._thread:
            self._thread.join()
            self._thread = None

    def probe_once(self) -> bool:
        """Opens the link if it is closed and the device is present"""

        if self._link.status().state != "closed":
            return False

        try:
            ports = _scanning.scan_serial_ports()
        except _exceptions.SerialScanException as exc:
            log.error("%s", exc)
            return False

        if not any(self._is_device(port) for port in ports):
            log.debug("%s not among %d ports", self._path, len(ports))
            return False

        try:
            return self._link.open(self._path, self._baud).is_open
        except _exceptions.LinkOpenFailed as exc:
            log.warning("Can't open %s (%s)", self._path, exc)
            return False

    def _is_device(self, port: _scanning.SerialPort) -> bool:
        # scanners may report device names lower-cased
        return port.name in (self._path, self._path.lower())

    def _loop(self) -> None:
        interval = self._opts.interval
        log.debug("Probing for %s every %.2fs", self._path, interval)
        while not self._stopping.is_set():
            try:
                self.probe_once()
            except Exception:
                log.exception("Probe for %s failed", self._path)
            self._stopping.wait(interval)
