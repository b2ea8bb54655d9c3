# firmware/hexfile.py
"""
Загрузка Intel-HEX в буфер, выровненный по страницам flash, и сохранение
считанной прошивки обратно в HEX.

Разбор/запись самого формата делает библиотека intelhex.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from pathlib import Path

from intelhex import IntelHex, IntelHexError

from ..config import ERASED_BYTE, SAVE_SUFFIX
from ..errors import AddressOutOfRange, DriverError, HexParseError, ResourceError, SaveError
from .map import FlashGeometry

logger = logging.getLogger(__name__)


@dataclass
class HexImage:
    addr_from: int
    addr_to: int
    offset: int
    data: bytearray = field(repr=False)

    def __len__(self) -> int:
        return len(self.data)

    def release(self):
        self.data = bytearray()


@dataclass
class SavedImage:
    image: HexImage
    path: Path


def _read_records(source) -> IntelHex:
    try:
        if isinstance(source, IntelHex):
            return source
        return IntelHex(str(source))
    except (IntelHexError, OSError, ValueError) as exc:
        raise HexParseError(f"cannot parse hex file {source}: {exc}") from exc


def load_hex(source, geometry: FlashGeometry) -> HexImage:
    """
    Превратить HEX (путь или IntelHex) в образ, выровненный по страницам.

    Файлы, адресованные с нуля, сдвигаются на начало flash.
    Всё вне диапазона записей заполняется 0xFF.
    """
    ih = _read_records(source)
    a, b = ih.minaddr(), ih.maxaddr()
    if a is None or b is None:
        raise HexParseError(f"hex file {source} has no data records")

    mask = geometry.flash_pagesize - 1
    raw_from = a & ~mask
    raw_to = ((b + geometry.flash_pagesize) & ~mask) - 1
    offset = a & mask

    addr_from, addr_to = raw_from, raw_to
    if addr_from < geometry.flash_start:
        addr_from += geometry.flash_start
        addr_to += geometry.flash_start

    if addr_to >= geometry.flash_end:
        raise AddressOutOfRange(
            f"hex addr ({addr_from:04x} ~ {addr_to:04x}) over flash size "
            f"({geometry.flash_start:04x} ~ {geometry.flash_end - 1:04x})"
        )

    size = addr_to - addr_from + 1
    try:
        data = bytearray([ERASED_BYTE]) * size
    except MemoryError as exc:
        raise ResourceError(f"cannot allocate {size} bytes for hex image") from exc

    # в todict() кроме адресов может лежать 'start_addr'
    for addr, value in ih.todict().items():
        if isinstance(addr, int):
            data[addr - raw_from] = value

    logger.debug("hex %04x..%04x -> image %04x..%04x (%d bytes, offset %d)",
                 a, b, addr_from, addr_to, size, offset)
    return HexImage(addr_from=addr_from, addr_to=addr_to, offset=offset, data=data)


def unload_hex(image: HexImage | None):
    if image is not None:
        image.release()


def save_path(base_file) -> Path:
    return Path(f"{base_file}{SAVE_SUFFIX}")


def save_flash(driver, base_file) -> SavedImage:
    """Считать всю flash и записать её в <base_file>.save (Intel-HEX)."""
    try:
        geometry = driver.flash_info()
        data = driver.read_flash(geometry.flash_start, geometry.flash_size)
    except DriverError as exc:
        raise SaveError.from_driver("read flash for save failed", exc) from exc

    if len(data) != geometry.flash_size:
        raise SaveError(f"short flash read: {len(data)} of {geometry.flash_size} bytes")

    image = HexImage(
        addr_from=geometry.flash_start,
        addr_to=geometry.flash_end - 1,
        offset=0,
        data=bytearray(data),
    )
    path = save_path(base_file)

    ih = IntelHex()
    ih.frombytes(image.data, offset=image.addr_from)
    try:
        ih.write_hex_file(str(path))
    except OSError as exc:
        raise SaveError(f"cannot write {path}: {exc}") from exc

    logger.info('Saved hex to "%s"', path)
    return SavedImage(image=image, path=path)
