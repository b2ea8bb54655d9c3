# errors.py
"""
Иерархия ошибок программатора.

Каждая ошибка относится к этапу (Stage) сценария прошивки; номер этапа
одновременно является кодом выхода процесса, чтобы вызывающие скрипты
могли понять, на каком шаге всё сломалось.
"""
from __future__ import annotations
from contextlib import contextmanager
from enum import IntEnum


class Stage(IntEnum):
    # коды 1 и 2 заняты click (ошибки разбора аргументов)
    CONFIG = 10
    UNSUPPORTED = 11
    INIT = 12
    DEVICE_INFO = 13
    UNLOCK = 14
    ERASE = 15
    FUSE = 16
    FLASH = 17
    SAVE = 18
    READ = 19
    WRITE = 20

    @property
    def exit_code(self) -> int:
        return int(self)

    @property
    def title(self) -> str:
        return self.name.lower().replace("_", "-")


class DriverError(Exception):
    """Отказ драйвера/транспорта. code: исходный код результата, если он есть."""

    def __init__(self, message: str, code: int | None = None):
        super().__init__(message)
        self.code = code


class UpdiToolError(Exception):
    stage: Stage | None = None

    def __init__(self, message: str, code: int | None = None):
        super().__init__(message)
        self.code = code

    @classmethod
    def from_driver(cls, what: str, exc: DriverError):
        return cls(f"{what}: {exc}", code=exc.code)


class ConfigError(UpdiToolError):
    stage = Stage.CONFIG


class UnsupportedDevice(UpdiToolError):
    stage = Stage.UNSUPPORTED


class DriverInitError(UpdiToolError):
    stage = Stage.INIT


class DeviceInfoError(UpdiToolError):
    pass


class UnlockError(UpdiToolError):
    pass


class EraseError(UpdiToolError):
    pass


class FuseParseError(UpdiToolError):
    pass


class FuseWriteError(UpdiToolError):
    pass


class HexParseError(UpdiToolError):
    pass


class AddressOutOfRange(UpdiToolError):
    pass


class ResourceError(UpdiToolError):
    pass


class MismatchError(UpdiToolError):
    def __init__(self, offset: int, expected: int, actual: int):
        super().__init__(
            f"verify failed at offset {offset}: expected {expected:02x}, got {actual:02x}"
        )
        self.offset = offset
        self.expected = expected
        self.actual = actual


class SaveError(UpdiToolError):
    pass


class ReadCommandParseError(UpdiToolError):
    pass


class WriteCommandParseError(UpdiToolError):
    pass


class DriverIOError(UpdiToolError):
    pass


class UnexpectedError(UpdiToolError):
    """Исключение не из нашей иерархии (ошибка библиотеки и т.п.), пойманное на этапе."""


@contextmanager
def stage(name: Stage):
    """Проставить этап ошибкам из блока; чужие исключения оборачиваются в UnexpectedError."""
    try:
        yield
    except UpdiToolError as exc:
        if exc.stage is None:
            exc.stage = name
        raise
    except Exception as exc:
        err = UnexpectedError(f"{type(exc).__name__}: {exc}")
        err.stage = name
        raise err from exc
