"""Unit tests for ok_print_bridge._receipt."""

import re

import pytest

import ok_print_bridge
from ok_print_bridge import _receipt

STATION = {
    "name": "Shwe Fuel",
    "address": "7 Pyay Rd",
    "city": "Yangon",
    "state": "MM",
    "phone1": "09-111",
    "phone2": "09-222",
}

VOUCHER = {
    "dailyReportDate": "Fri Sep 26 2025",
    "createAt": "2025-09-26T12:34:56.000Z",
    "nozzleNo": "03",
    "vocono": "VC000042",
    "salePrice": "2530",
    "saleLiter": "4.00",
    "totalPrice": "10120",
    "fuelType": "DIESEL",
}


def _hex(text: str) -> str:
    return text.encode("latin-1").hex().upper()


def _reference_receipt_hex(s: dict, v: dict) -> str:
    """The voucher layout as hex chunks, the way existing clients build it"""

    rule = "2D" * 28 + "0A"
    return "".join(
        [
            f"1B401B6101{_hex(s['name'])}0A",
            f"{_hex(s['address'] + ', ' + s['city'] + ', ' + s['state'])}0A",
            f"{_hex(s['phone1'])}2C20{_hex(s['phone2'])}0A",
            "1B6100",
            rule,
            f"564F434F4E4F202020{_hex(v['vocono'])}0A",
            f"444154452020202020{_hex(v['dailyReportDate'])}0A",
            f"54494D452020202020{_hex(v['createAt'][11:19])}0A",
            f"4E4F5A5A4C45202020{_hex(v['nozzleNo'])}0A",
            rule,
            f"4655454C20202020{_hex(v['fuelType'])}0A",
            f"4241534520505249434520202020{_hex(v['salePrice'])}"
            "204D4D4B202F204C495445520A",
            f"53414C45204C4954455253202020{_hex(v['saleLiter'])}204C490A",
            f"544F54414C202020202020202020{_hex(v['totalPrice'])}204D4D4B0A",
            "202020202020202020202020202028494E434C555349564520544158290A",
            rule,
            "1B6101",
            "5448414E4B20594F5520464F52205649534954494E470A",
            "1B6401",
            "1D564100",
        ]
    )


def test_full_fields_match_reference_layout():
    receipt = ok_print_bridge.build_voucher_receipt(STATION, VOUCHER)
    assert receipt.data == bytes.fromhex(
        _reference_receipt_hex(STATION, VOUCHER)
    )
    assert receipt.used_defaults is False


def test_no_fields_uses_defaults():
    receipt = ok_print_bridge.build_voucher_receipt({}, {})
    assert receipt.used_defaults is True
    assert receipt.data.startswith(b"\x1b@\x1ba\x01My Station\n")
    assert b"123 Main St, Yangon, MM\n" in receipt.data
    assert b"09-123456789, 09-987654321\n" in receipt.data
    assert b"VOCONO   VC123456\n" in receipt.data
    assert b"FUEL    OCTANE 95\n" in receipt.data
    assert b"BASE PRICE    2530 MMK / LITER\n" in receipt.data
    assert b"SALE LITERS   10.50 LI\n" in receipt.data
    assert b"TOTAL         26565 MMK\n" in receipt.data
    assert re.search(rb"TIME     \d\d:\d\d:\d\d\n", receipt.data)
    assert receipt.data.endswith(b"\x1bd\x01\x1dVA\x00")


def test_none_is_the_same_as_empty():
    receipt = ok_print_bridge.build_voucher_receipt()
    assert receipt.used_defaults is True
    assert b"VOCONO   VC123456\n" in receipt.data


def test_partial_fields_merge_over_defaults():
    receipt = ok_print_bridge.build_voucher_receipt(
        {"name": "Corner Gas"}, {"vocono": "VC777", "saleLiter": 12.5}
    )
    assert receipt.used_defaults is False
    assert receipt.data.startswith(b"\x1b@\x1ba\x01Corner Gas\n")
    assert b"123 Main St, Yangon, MM\n" in receipt.data
    assert b"VOCONO   VC777\n" in receipt.data
    assert b"SALE LITERS   12.5 LI\n" in receipt.data


@pytest.mark.parametrize(
    "station, voucher",
    [
        (None, {"vocono": "X"}),
        ({"name": "Corner Gas"}, None),
        ({}, {"nozzleNo": 2}),
        (ok_print_bridge.StationFields(), None),
    ],
)
def test_any_supplied_field_clears_used_defaults(station, voucher):
    receipt = ok_print_bridge.build_voucher_receipt(station, voucher)
    assert receipt.used_defaults is False


@pytest.mark.parametrize(
    "station, voucher, field",
    [
        ("x", None, "station"),
        ([], None, "station"),
        (None, ["VC1"], "voucher"),
        (None, 42, "voucher"),
    ],
)
def test_non_object_records_fail(station, voucher, field):
    with pytest.raises(ok_print_bridge.InvalidField) as info:
        ok_print_bridge.build_voucher_receipt(station, voucher)
    assert info.value.field == field


def test_typed_records_are_accepted():
    station = ok_print_bridge.StationFields(**STATION)
    voucher = ok_print_bridge.VoucherFields(**VOUCHER)
    receipt = ok_print_bridge.build_voucher_receipt(station, voucher)
    assert receipt == ok_print_bridge.build_voucher_receipt(STATION, VOUCHER)


def test_numbers_are_printed_as_text():
    voucher = {**VOUCHER, "salePrice": 2530, "totalPrice": 10120}
    receipt = ok_print_bridge.build_voucher_receipt(STATION, voucher)
    assert receipt.data == bytes.fromhex(
        _reference_receipt_hex(STATION, VOUCHER)
    )


def test_default_timestamps_look_right():
    voucher = ok_print_bridge.VoucherFields()
    assert re.fullmatch(r"\w{3} \w{3} \d{2} \d{4}", voucher.dailyReportDate)
    assert re.fullmatch(
        r"\d{4}-\d\d-\d\dT\d\d:\d\d:\d\d\.\d{3}Z", voucher.createAt
    )


#
# Time slice validation. Short or malformed timestamps are rejected rather
# than printing whatever sits at characters 11..19.
#


@pytest.mark.parametrize(
    "create_at, expected",
    [
        ("2025-09-26T12:34:56.000Z", "12:34:56"),
        ("2025-09-26T23:59:59", "23:59:59"),
        ("2025-09-26 00:00:01+06:30", "00:00:01"),
    ],
)
def test_voucher_time(create_at, expected):
    assert _receipt.voucher_time(create_at) == expected


@pytest.mark.parametrize(
    "create_at",
    ["", "12:34:56", "2025-09-26", "2025-09-26T12:34", "Fri Sep 26 2025"],
)
def test_voucher_time_rejects_bad_timestamps(create_at):
    with pytest.raises(ok_print_bridge.InvalidField) as info:
        _receipt.voucher_time(create_at)
    assert info.value.field == "createAt"


def test_bad_timestamp_fails_the_whole_receipt():
    with pytest.raises(ok_print_bridge.InvalidField, match="createAt"):
        ok_print_bridge.build_voucher_receipt({}, {"createAt": "yesterday"})


def test_wide_characters_fail_with_field_name():
    with pytest.raises(ok_print_bridge.InvalidField) as info:
        ok_print_bridge.build_voucher_receipt({"name": "ရွှေ"}, {})
    assert info.value.field == "name"


def test_wrongly_typed_field_fails():
    with pytest.raises(ok_print_bridge.InvalidField) as info:
        ok_print_bridge.build_voucher_receipt({}, {"vocono": ["VC1"]})
    assert info.value.field == "vocono"


def test_render_template_segments():
    template = (
        _receipt.Text(b"\x1b@"),
        _receipt.FieldRef("who"),
        _receipt.Text(b"\n"),
    )
    assert _receipt.render_template(template, {"who": "Hi"}) == b"\x1b@Hi\n"
