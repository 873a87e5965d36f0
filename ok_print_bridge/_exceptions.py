"""Exception hierarchy for ok_print_bridge"""


class BridgeException(Exception):
    def __init__(
        self,
        message: str,
        port: str | None = None,
    ):
        super().__init__(f"{port}: {message}" if port else message)
        self.port = port

    @property
    def kind(self) -> str:
        return type(self).__name__


class PayloadException(BridgeException, ValueError):
    pass


class InvalidEncoding(PayloadException):
    pass


class MissingPayload(PayloadException):
    pass


class PayloadTooLarge(PayloadException):
    pass


class InvalidField(PayloadException):
    def __init__(self, message: str, field: str):
        super().__init__(f"{field}: {message}")
        self.field = field


class LinkException(BridgeException, OSError):
    pass


class NotOpen(LinkException):
    pass


class LinkOpenFailed(LinkException):
    pass


class LinkBusy(LinkOpenFailed):
    pass


class LinkDisconnected(LinkException):
    pass


class WriteTimeout(LinkException):
    pass


class SerialScanException(LinkException):
    pass


class Unauthorized(BridgeException, PermissionError):
    pass


class ConfigInvalid(BridgeException, ValueError):
    pass
