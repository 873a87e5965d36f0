import dataclasses
import json
import logging
import natsort
import os
import pathlib
from serial.tools import list_ports
from serial.tools import list_ports_common

from ok_print_bridge import _exceptions

log = logging.getLogger("ok_print_bridge.scanning")

SCAN_OVERRIDE_ENV = "OK_PRINT_BRIDGE_SCAN_OVERRIDE"

# pyserial attribute -> key in port listings
_LISTING_KEYS = {
    "vid": "vendorId",
    "pid": "productId",
    "manufacturer": "manufacturer",
    "product": "product",
    "serial_number": "serialNumber",
    "description": "description",
}

_MISSING = (None, "", "n/a")


@dataclasses.dataclass(frozen=True)
class SerialPort:
    """A serial device present on the system, with its pyserial attributes"""

    name: str
    attr: dict[str, str]

    def __str__(self):
        return self.name

    def describe(self) -> dict[str, str]:
        """JSON-friendly summary for port listings"""

        out = {"path": self.name}
        for key, label in _LISTING_KEYS.items():
            value = self.attr.get(key)
            if value in _MISSING:
                continue
            if key in ("vid", "pid") and value.isdigit():
                value = f"{int(value):04x}"
            out[label] = value
        return out


_by_name = natsort.natsort_keygen(key=lambda p: p.name, alg=natsort.ns.P)


def scan_serial_ports() -> list[SerialPort]:
    """Serial ports on this system in natural name order"""

    if override := os.getenv(SCAN_OVERRIDE_ENV):
        ports = _load_override(override)
    else:
        try:
            found = list_ports.comports()
        except OSError as ex:
            raise _exceptions.SerialScanException("Can't scan serial") from ex
        ports = [_from_port_info(info) for info in found]

    ports.sort(key=_by_name)
    log.debug("Found %d ports", len(ports))
    return ports


def _load_override(path: str) -> list[SerialPort]:
    # JSON object of {port name: {attribute: text}}, standing in for a scan
    try:
        data = json.loads(pathlib.Path(path).read_text())
    except (OSError, ValueError) as ex:
        message = f"Can't read ${SCAN_OVERRIDE_ENV} {path}"
        raise _exceptions.SerialScanException(message) from ex

    valid = isinstance(data, dict) and all(
        isinstance(attr, dict)
        and all(isinstance(value, str) for value in attr.values())
        for attr in data.values()
    )
    if not valid:
        message = f"${SCAN_OVERRIDE_ENV} {path} is not a dict of dicts"
        raise _exceptions.SerialScanException(message)

    log.debug("$%s (%s): %d ports", SCAN_OVERRIDE_ENV, path, len(data))
    return [SerialPort(name=name, attr=attr) for name, attr in data.items()]


def _from_port_info(info: list_ports_common.ListPortInfo) -> SerialPort:
    attr = {
        k.lower(): str(v) for k, v in vars(info).items() if v not in _MISSING
    }
    return SerialPort(name=info.device, attr=attr)
