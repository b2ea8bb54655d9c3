# mem_tools.py
"""
Прямой доступ к памяти UPDI (всё адресное пространство, не только flash):

- read:  "адрес;длина"          адрес HEX, длина DEC, не больше 255 байт за раз
- write: "адрес;b0;b1;...;bN"   адрес и байты HEX, пишется окнами по 16 байт,
                                затем всё записанное читается обратно
"""
from __future__ import annotations
import logging
from dataclasses import dataclass

from .config import READ_MAX_LEN, WRITE_WINDOW
from .errors import DriverError, DriverIOError, ReadCommandParseError, WriteCommandParseError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReadCommand:
    address: int
    length: int


@dataclass(frozen=True)
class WriteCommand:
    address: int
    data: bytes


@dataclass(frozen=True)
class MemoryWindow:
    address: int
    data: bytes


def parse_read_command(cmd: str) -> ReadCommand:
    tokens = cmd.split(";")
    if len(tokens) != 2:
        raise ReadCommandParseError(f"Parse read str '{cmd}': token count {len(tokens)} != 2")
    try:
        address = int(tokens[0].strip(), 16)
        length = int(tokens[1].strip(), 10)
    except ValueError as exc:
        raise ReadCommandParseError(f"Parse read str '{cmd}' failed: {exc}") from exc

    if address < 0 or length < 1:
        raise ReadCommandParseError(f"Parse read str '{cmd}': bad address or length")
    if length > READ_MAX_LEN:
        logger.warning("Read memory len %d over max, set to %d", length, READ_MAX_LEN)
        length = READ_MAX_LEN
    return ReadCommand(address=address, length=length)


def parse_write_command(cmd: str) -> WriteCommand:
    tokens = cmd.split(";")
    try:
        address = int(tokens[0].strip(), 16)
    except ValueError as exc:
        raise WriteCommandParseError(f"Parse write str '{cmd}': bad address") from exc
    if address < 0:
        raise WriteCommandParseError(f"Parse write str '{cmd}': bad address")

    data = bytearray()
    for i, tok in enumerate(tokens[1:], start=1):
        try:
            value = int(tok.strip(), 16)
        except ValueError as exc:
            raise WriteCommandParseError(f"Parse write str '{cmd}': bad byte #{i} '{tok}'") from exc
        if not 0 <= value <= 0xFF:
            raise WriteCommandParseError(f"Parse write str '{cmd}': #{i} {tok} is not a byte")
        data.append(value)
    return WriteCommand(address=address, data=bytes(data))


def iter_windows(address: int, data: bytes, size: int = WRITE_WINDOW):
    for start in range(0, len(data), size):
        yield MemoryWindow(address + start, data[start:start + size])


def direct_read(driver, cmd: ReadCommand | str) -> bytes:
    if isinstance(cmd, str):
        cmd = parse_read_command(cmd)
    try:
        data = driver.read_mem(cmd.address, cmd.length)
    except DriverError as exc:
        raise DriverIOError.from_driver(f"read memory at {cmd.address:04x}", exc) from exc
    logger.info("Read %d bytes at %04x", len(data), cmd.address)
    return bytes(data)


def direct_write(driver, cmd: WriteCommand | str) -> bytes:
    """Записать байты окнами по 16 и вернуть то, что прочиталось обратно."""
    if isinstance(cmd, str):
        cmd = parse_write_command(cmd)
    windows = list(iter_windows(cmd.address, cmd.data))
    if not windows:
        logger.warning("Write address %x: nothing to write", cmd.address)
        return b""

    for w in windows:
        try:
            driver.write_mem(w.address, w.data)
        except DriverError as exc:
            raise DriverIOError.from_driver(f"write memory at {w.address:04x}", exc) from exc
    logger.info("Write address %x(%d) done", cmd.address, len(cmd.data))

    readback = bytearray()
    for w in windows:
        try:
            readback.extend(driver.read_mem(w.address, len(w.data)))
        except DriverError as exc:
            raise DriverIOError.from_driver(f"readback at {w.address:04x}", exc) from exc

    if bytes(readback) != cmd.data:
        # регистры периферии вполне могут читаться не тем, что записали
        logger.warning("Readback at %x differs from written data", cmd.address)
    return bytes(readback)


BYTES_PER_ROW = 16


def format_hexdump(data: bytes, address: int = 0) -> str:
    """16 байт в строке + ASCII колонка."""
    lines = []
    for off in range(0, len(data), BYTES_PER_ROW):
        row = data[off:off + BYTES_PER_ROW]
        hexpart = " ".join(f"{b:02x}" for b in row)
        text = "".join(chr(b) if 32 <= b <= 126 else "." for b in row)
        lines.append(f"{address + off:06x}: {hexpart:<{BYTES_PER_ROW * 3 - 1}}  {text}")
    return "\n".join(lines)
