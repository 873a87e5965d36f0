"""Command envelopes, their outcomes, and the dispatcher joining them"""

import logging
import typing

import pydantic

from ok_print_bridge import _encoding
from ok_print_bridge import _exceptions
from ok_print_bridge import _link
from ok_print_bridge import _receipt
from ok_print_bridge import _scanning

log = logging.getLogger("ok_print_bridge.dispatch")

class _Envelope(pydantic.BaseModel):
    model_config = pydantic.ConfigDict(extra="ignore")


class OpenCommand(_Envelope):
    path: str | None = None
    baud: int | None = None


class HexCommand(_Envelope):
    hex: typing.Any = None


class Base64Command(_Envelope):
    b64: typing.Any = None


class VoucherCommand(_Envelope):
    # Any JSON value; the receipt builder reports non-objects as InvalidField
    station: typing.Any = None
    voucher: typing.Any = None
    data: typing.Any = None  # flattened voucher fields, merged last


class _Outcome(pydantic.BaseModel):
    model_config = pydantic.ConfigDict(populate_by_name=True, frozen=True)


class OpenResult(_Outcome):
    opened: bool
    path: str
    baud: int


class WriteResult(_Outcome):
    byte_count: int = pydantic.Field(alias="bytes")


class VoucherResult(WriteResult):
    used_defaults: bool = pydantic.Field(alias="usedDefaults")


class HealthResult(_Outcome):
    path: str
    baud: int
    state: _link.LinkState
    open: bool


class DispatchOptions(typing.NamedTuple):
    max_binary_size: int = _encoding.MAX_BINARY_SIZE


class CommandDispatcher:
    """Validates commands, encodes payloads, and hands bytes to the link"""

    def __init__(
        self,
        link: _link.SerialLink,
        opts: DispatchOptions = DispatchOptions(),
    ):
        self._link = link
        self._opts = opts

    def __repr__(self) -> str:
        return f"CommandDispatcher({self._link!r}, {self._opts!r})"

    @property
    def link(self) -> _link.SerialLink:
        return self._link

    def open(self, cmd: OpenCommand = OpenCommand()) -> OpenResult:
        status = self._link.open(cmd.path, cmd.baud)
        return OpenResult(
            opened=status.is_open, path=status.path, baud=status.baud
        )

    def close(self) -> None:
        self._link.close()

    def write_hex(self, cmd: HexCommand) -> WriteResult:
        self._require_open()
        return self._send(_encoding.encode_hex(cmd.hex), "write-hex")

    def write_base64(self, cmd: Base64Command) -> WriteResult:
        self._require_open()
        return self._send(_encoding.encode_base64(cmd.b64), "write-base64")

    def write_binary(
        self, data: bytes | bytearray | memoryview | None
    ) -> WriteResult:
        self._require_open()
        max_size = self._opts.max_binary_size
        payload = _encoding.passthrough_binary(data, max_size=max_size)
        return self._send(payload, "write-binary")

    def print_voucher(
        self, cmd: VoucherCommand = VoucherCommand()
    ) -> VoucherResult:
        self._require_open()
        voucher = cmd.voucher
        if cmd.data is not None:
            if not isinstance(cmd.data, typing.Mapping):
                message = f"Expected an object, got {type(cmd.data).__name__}"
                raise _exceptions.InvalidField(message, "data")
            if voucher is None or isinstance(voucher, typing.Mapping):
                voucher = {**(voucher or {}), **cmd.data}
        receipt = _receipt.build_voucher_receipt(cmd.station, voucher)
        sent = self._send(receipt.data, "print-voucher")
        return VoucherResult(
            byte_count=sent.byte_count, used_defaults=receipt.used_defaults
        )

    def health(self) -> HealthResult:
        status = self._link.status()
        return HealthResult(
            path=status.path,
            baud=status.baud,
            state=status.state,
            open=status.is_open,
        )

    def list_ports(self) -> list[dict[str, str]]:
        return [port.describe() for port in _scanning.scan_serial_ports()]

    def _require_open(self) -> None:
        status = self._link.status()
        if not status.is_open:
            message = f"Serial link is {status.state}"
            raise _exceptions.NotOpen(message, status.path)

    def _send(self, data: bytes, command: str) -> WriteResult:
        count = self._link.write(data, command=command)
        log.info("%s: %db sent", command, count)
        return WriteResult(byte_count=count)
