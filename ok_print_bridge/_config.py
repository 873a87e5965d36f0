import logging
import os
import typing

import pydantic

from ok_print_bridge import _dispatch
from ok_print_bridge import _encoding
from ok_print_bridge import _exceptions
from ok_print_bridge import _link
from ok_print_bridge import _probe

log = logging.getLogger("ok_print_bridge.config")

# environment variable -> BridgeConfig field
ENV_FIELDS = {
    "HOST": "host",
    "PORT": "port",
    "SERIAL_PATH": "serial_path",
    "BAUD": "baud",
    "BRIDGE_SECRET": "secret",
    "AUTO_OPEN": "auto_open",
    "POLL_MS": "poll_ms",
    "ALLOWED_ORIGINS": "allowed_origins",
    "MAX_BINARY_BYTES": "max_binary_bytes",
    "WRITE_TIMEOUT": "write_timeout",
}


class BridgeConfig(pydantic.BaseModel):
    model_config = pydantic.ConfigDict(frozen=True)

    host: str = "0.0.0.0"
    port: int = pydantic.Field(default=8081, ge=1, le=65535)
    serial_path: str = "/dev/ttyUSB0"
    baud: int = pydantic.Field(default=9600, gt=0)
    secret: str = ""
    auto_open: bool = True
    poll_ms: int = pydantic.Field(default=3000, gt=0)
    allowed_origins: tuple[str, ...] = ("*",)
    max_binary_bytes: int = pydantic.Field(
        default=_encoding.MAX_BINARY_SIZE, gt=0
    )
    write_timeout: float = pydantic.Field(default=30.0, ge=0)

    @classmethod
    def from_env(
        cls,
        environ: typing.Mapping[str, str] | None = None,
        **overrides: typing.Any,
    ) -> "BridgeConfig":
        """Reads settings from environment variables, then 'overrides'"""

        env = os.environ if environ is None else environ
        values: dict[str, typing.Any] = {}
        for name, field in ENV_FIELDS.items():
            if not (text := env.get(name, "").strip()):
                continue
            if field == "allowed_origins":
                origins = (o.strip() for o in text.split(","))
                values[field] = [o for o in origins if o]
            else:
                values[field] = text

        values.update((k, v) for k, v in overrides.items() if v is not None)
        try:
            return cls.model_validate(values)
        except pydantic.ValidationError as ex:
            err = ex.errors()[0]
            field = ".".join(str(p) for p in err["loc"])
            names = [n for n, f in ENV_FIELDS.items() if f == field]
            message = f"Bad setting {(names or [field])[0]}: {err['msg']}"
            raise _exceptions.ConfigInvalid(message) from ex

    def link_options(self) -> _link.LinkOptions:
        return _link.LinkOptions(
            baud=self.baud,
            write_timeout=self.write_timeout or None,
        )

    def probe_options(self) -> _probe.ProbeOptions:
        return _probe.ProbeOptions(interval=self.poll_ms / 1000)

    def dispatch_options(self) -> _dispatch.DispatchOptions:
        return _dispatch.DispatchOptions(max_binary_size=self.max_binary_bytes)
