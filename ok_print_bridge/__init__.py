"""
HTTP to serial bridge for ESC/POS receipt printers, with a single managed
serial link, payload encoders, and a voucher receipt template.
"""

from beartype.claw import beartype_this_package as _beartype_me

# ruff: noqa: E402
_beartype_me()

from ok_print_bridge._config import BridgeConfig

from ok_print_bridge._dispatch import (
    Base64Command,
    CommandDispatcher,
    DispatchOptions,
    HealthResult,
    HexCommand,
    OpenCommand,
    OpenResult,
    VoucherCommand,
    VoucherResult,
    WriteResult,
)

from ok_print_bridge._encoding import (
    MAX_BINARY_SIZE,
    encode_ascii_to_hex_upper,
    encode_base64,
    encode_hex,
    passthrough_binary,
)

from ok_print_bridge._exceptions import (
    BridgeException,
    ConfigInvalid,
    InvalidEncoding,
    InvalidField,
    LinkBusy,
    LinkDisconnected,
    LinkException,
    LinkOpenFailed,
    MissingPayload,
    NotOpen,
    PayloadException,
    PayloadTooLarge,
    SerialScanException,
    Unauthorized,
    WriteTimeout,
)

from ok_print_bridge._link import LinkOptions, LinkState, LinkStatus, SerialLink
from ok_print_bridge._locking import SharingType
from ok_print_bridge._probe import LinkProber, ProbeOptions

from ok_print_bridge._receipt import (
    RECEIPT_TEMPLATE,
    FieldRef,
    StationFields,
    Text,
    VoucherFields,
    VoucherReceipt,
    build_voucher_receipt,
)

from ok_print_bridge._scanning import SerialPort, scan_serial_ports

__all__ = [n for n in dir() if not n.startswith("_")]
