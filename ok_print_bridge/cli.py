#!/usr/bin/env python3

"""CLI tool to run the HTTP print bridge and/or list serial ports"""

import argparse
import logging
import ok_logging_setup
import ok_print_bridge
import ok_print_bridge.server

ok_logging_setup.skip_traceback_for(ok_print_bridge.ConfigInvalid)
ok_logging_setup.skip_traceback_for(ok_print_bridge.SerialScanException)


def main():
    parser = argparse.ArgumentParser(
        description="Bridge HTTP clients to a serial receipt printer."
    )
    subparsers = parser.add_subparsers(title="actions", dest="command")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP bridge")
    serve_parser.add_argument("--host", help="bind address ($HOST)")
    serve_parser.add_argument("--port", type=int, help="HTTP port ($PORT)")
    serve_parser.add_argument(
        "--serial-path", help="printer device ($SERIAL_PATH)"
    )
    serve_parser.add_argument("--baud", type=int, help="baud rate ($BAUD)")
    serve_parser.add_argument(
        "--no-auto-open",
        dest="auto_open",
        action="store_const",
        const=False,
        help="don't probe for the printer ($AUTO_OPEN=false)",
    )

    list_parser = subparsers.add_parser("list", help="List serial ports")
    list_parser.add_argument(
        "--verbose", "-v", action="store_true", help="print all properties"
    )

    args = parser.parse_args()
    if not args.command:
        args = parser.parse_args(["serve"])

    ok_logging_setup.install({"OK_LOGGING_LEVEL": "info"})

    if args.command == "list":
        ports = ok_print_bridge.scan_serial_ports()
        if not ports:
            ok_logging_setup.exit("❌ No serial ports found")
        num = len(ports)
        logging.info("🔌 %d serial port%s found", num, "" if num == 1 else "s")
        for port in ports:
            if args.verbose:
                print(format_verbose(port), end="\n\n")
            else:
                print(format_line(port))

    if args.command == "serve":
        config = ok_print_bridge.BridgeConfig.from_env(
            host=args.host,
            port=args.port,
            serial_path=args.serial_path,
            baud=args.baud,
            auto_open=args.auto_open,
        )
        ok_print_bridge.server.serve(config)


def format_line(port: ok_print_bridge.SerialPort) -> str:
    info = port.describe()
    words = [info.pop("path")]
    if "vendorId" in info and "productId" in info:
        words.append(f"{info.pop('vendorId')}:{info.pop('productId')}")
    words.extend(
        v if " " not in v else repr(v)
        for k in ("manufacturer", "product", "serialNumber")
        if (v := info.get(k))
    )
    return " ".join(words)


def format_verbose(port: ok_print_bridge.SerialPort) -> str:
    return f"Serial port: {port.name}" + "".join(
        f"\n  {k}={v!r}" for k, v in port.attr.items()
    )


if __name__ == "__main__":
    main()
