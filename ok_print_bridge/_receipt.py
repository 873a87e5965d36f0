"""
Fuel station voucher receipt, rendered as an ESC/POS byte sequence.

The layout is a fixed list of segments: literal printer bytes interleaved
with references to text fields. Field text is hex-encoded one byte per
character, so only code points up to 0xFF can be printed.
"""

import datetime
import logging
import re
import typing

import pydantic

from ok_print_bridge import _encoding
from ok_print_bridge import _exceptions

log = logging.getLogger("ok_print_bridge.receipt")

_TIME_SLICE = slice(11, 19)
_TIME_RE = re.compile(r"[0-9]{2}:[0-9]{2}:[0-9]{2}")


def _today() -> str:
    return datetime.date.today().strftime("%a %b %d %Y")


def _now_iso() -> str:
    now = datetime.datetime.now(datetime.timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class _Fields(pydantic.BaseModel):
    model_config = pydantic.ConfigDict(
        coerce_numbers_to_str=True,
        extra="ignore",
        frozen=True,
    )


class StationFields(_Fields):
    name: str = "My Station"
    address: str = "123 Main St"
    city: str = "Yangon"
    state: str = "MM"
    phone1: str = "09-123456789"
    phone2: str = "09-987654321"


class VoucherFields(_Fields):
    dailyReportDate: str = pydantic.Field(default_factory=_today)
    createAt: str = pydantic.Field(default_factory=_now_iso)
    nozzleNo: str = "01"
    vocono: str = "VC123456"
    salePrice: str = "2530"
    saleLiter: str = "10.50"
    totalPrice: str = "26565"
    fuelType: str = "OCTANE 95"


class Text(typing.NamedTuple):
    """Literal printer bytes"""

    data: bytes


class FieldRef(typing.NamedTuple):
    """Placeholder for a named text value"""

    name: str


Segment = Text | FieldRef

ESC, GS, LF = b"\x1b", b"\x1d", b"\n"
INIT = ESC + b"@"
ALIGN_LEFT, ALIGN_CENTER = ESC + b"a\x00", ESC + b"a\x01"
FEED_1 = ESC + b"d\x01"
PARTIAL_CUT = GS + b"VA\x00"
RULE = b"-" * 28 + LF

RECEIPT_TEMPLATE: tuple[Segment, ...] = (
    Text(INIT + ALIGN_CENTER),
    FieldRef("name"),
    Text(LF),
    FieldRef("location"),
    Text(LF),
    FieldRef("phone1"),
    Text(b", "),
    FieldRef("phone2"),
    Text(LF + ALIGN_LEFT + RULE + b"VOCONO   "),
    FieldRef("vocono"),
    Text(LF + b"DATE     "),
    FieldRef("date"),
    Text(LF + b"TIME     "),
    FieldRef("time"),
    Text(LF + b"NOZZLE   "),
    FieldRef("nozzle"),
    Text(LF + RULE + b"FUEL    "),
    FieldRef("fuel"),
    Text(LF + b"BASE PRICE    "),
    FieldRef("price"),
    Text(b" MMK / LITER" + LF + b"SALE LITERS   "),
    FieldRef("liters"),
    Text(b" LI" + LF + b"TOTAL         "),
    FieldRef("total"),
    Text(b" MMK" + LF + b" " * 14 + b"(INCLUSIVE TAX)" + LF + RULE),
    Text(ALIGN_CENTER + b"THANK YOU FOR VISITING" + LF),
    Text(FEED_1 + PARTIAL_CUT),
)


class VoucherReceipt(typing.NamedTuple):
    data: bytes
    used_defaults: bool


def render_template(
    template: typing.Iterable[Segment], values: typing.Mapping[str, str]
) -> bytes:
    """Fills field references with hex-encoded text and decodes the result"""

    hex_parts = []
    for seg in template:
        if isinstance(seg, Text):
            hex_parts.append(seg.data.hex().upper())
        else:
            try:
                text = values[seg.name]
                hex_parts.append(_encoding.encode_ascii_to_hex_upper(text))
            except _exceptions.InvalidEncoding as ex:
                raise _exceptions.InvalidField(str(ex), seg.name) from ex
    return _encoding.encode_hex("".join(hex_parts))


def voucher_time(create_at: str) -> str:
    """The HH:MM:SS part of an ISO-8601 timestamp"""

    if len(create_at) < _TIME_SLICE.stop:
        message = f"Timestamp {create_at!r} too short for HH:MM:SS"
        raise _exceptions.InvalidField(message, "createAt")
    hms = create_at[_TIME_SLICE]
    if not _TIME_RE.fullmatch(hms):
        message = f"Timestamp {create_at!r} has no HH:MM:SS at [11:19]"
        raise _exceptions.InvalidField(message, "createAt")
    return hms


def build_voucher_receipt(
    station: typing.Any = None,
    voucher: typing.Any = None,
) -> VoucherReceipt:
    """
    Merges partial fields over defaults and renders the receipt.

    'station' and 'voucher' may each be a fields record, a mapping of field
    names, or None. 'used_defaults' is set when neither supplied anything.
    """

    used_defaults = not (station or voucher)
    station = _as_fields(StationFields, station, "station")
    voucher = _as_fields(VoucherFields, voucher, "voucher")

    values = {
        "name": station.name,
        "location": f"{station.address}, {station.city}, {station.state}",
        "phone1": station.phone1,
        "phone2": station.phone2,
        "date": voucher.dailyReportDate,
        "time": voucher_time(voucher.createAt),
        "nozzle": voucher.nozzleNo,
        "vocono": voucher.vocono,
        "price": voucher.salePrice,
        "liters": voucher.saleLiter,
        "total": voucher.totalPrice,
        "fuel": voucher.fuelType,
    }
    data = render_template(RECEIPT_TEMPLATE, values)
    log.debug(
        "Voucher %s: %db%s",
        voucher.vocono,
        len(data),
        " (with defaults)" if used_defaults else "",
    )
    return VoucherReceipt(data=data, used_defaults=used_defaults)


def _as_fields(model: type[_Fields], value, name: str):
    if value is None:
        return model()
    if isinstance(value, model):
        return value
    try:
        return model.model_validate(value)
    except pydantic.ValidationError as ex:
        err = ex.errors()[0]
        field = ".".join(str(p) for p in err["loc"]) or name
        raise _exceptions.InvalidField(err["msg"], field) from ex
