"""Unit tests for ok_print_bridge._scanning."""

import json
import pytest
from serial.tools import list_ports
from serial.tools import list_ports_common

import ok_print_bridge
from ok_print_bridge import SerialPort


def test_scan_ports(mocker):
    mocker.patch("serial.tools.list_ports.comports")

    bare_port = list_ports_common.ListPortInfo("/dev/zz")

    full_port = list_ports_common.ListPortInfo("/dev/full")
    full_port.description = "Description"
    full_port.hwid = "HwId"
    full_port.vid = 1208
    full_port.pid = 3605
    full_port.serial_number = "Serial"
    full_port.location = "Location"
    full_port.manufacturer = "Manufacturer"
    full_port.product = "Product"
    full_port.interface = "Interface"

    list_ports.comports.return_value = [bare_port, full_port]

    full, bare = ok_print_bridge.scan_serial_ports()
    assert full == SerialPort(
        name="/dev/full",
        attr={
            "device": "/dev/full",
            "name": "full",
            "description": "Description",
            "hwid": "HwId",
            "vid": "1208",
            "pid": "3605",
            "serial_number": "Serial",
            "manufacturer": "Manufacturer",
            "product": "Product",
            "interface": "Interface",
            "location": "Location",
        },
    )
    assert bare == SerialPort(
        name="/dev/zz", attr={"device": "/dev/zz", "name": "zz"}
    )

    assert full.describe() == {
        "path": "/dev/full",
        "vendorId": "04b8",
        "productId": "0e15",
        "manufacturer": "Manufacturer",
        "product": "Product",
        "serialNumber": "Serial",
        "description": "Description",
    }
    assert bare.describe() == {"path": "/dev/zz"}


def test_scan_ports_natural_order(set_scan_override):
    set_scan_override(
        {"/dev/ttyUSB10": {}, "/dev/ttyUSB2": {}, "/dev/ttyS0": {}}
    )
    names = [p.name for p in ok_print_bridge.scan_serial_ports()]
    assert names == ["/dev/ttyS0", "/dev/ttyUSB2", "/dev/ttyUSB10"]


def test_scan_ports_with_override(monkeypatch, tmp_path):
    override_path = tmp_path / "scan_override.json"
    monkeypatch.setenv("OK_PRINT_BRIDGE_SCAN_OVERRIDE", str(override_path))
    with pytest.raises(ok_print_bridge.SerialScanException):
        ok_print_bridge.scan_serial_ports()  # fails: file does not exist

    override_path.write_text("bad json")
    with pytest.raises(ok_print_bridge.SerialScanException):
        ok_print_bridge.scan_serial_ports()  # fails: format is invalid

    override_path.write_text(json.dumps({"bad": {"entry": None}}))
    with pytest.raises(ok_print_bridge.SerialScanException):
        ok_print_bridge.scan_serial_ports()  # fails: structure is invalid

    override = {"port1": {"aname": "avalue", "bname": "bvalue"}, "port2": {}}
    override_path.write_text(json.dumps(override))

    assert ok_print_bridge.scan_serial_ports() == [
        SerialPort(name="port1", attr={"aname": "avalue", "bname": "bvalue"}),
        SerialPort(name="port2", attr={}),
    ]


def test_describe_keeps_non_numeric_ids():
    port = SerialPort(name="COM4", attr={"vid": "n/a?", "pid": "04B8"})
    assert port.describe() == {
        "path": "COM4",
        "vendorId": "n/a?",
        "productId": "04B8",
    }
    assert str(port) == "COM4"

