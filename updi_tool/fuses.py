# fuses.py
from __future__ import annotations
import logging
from dataclasses import dataclass

from .errors import DriverError, FuseParseError, FuseWriteError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FuseWrite:
    index: int
    value: int


def parse_fuse_spec(spec: str) -> FuseWrite:
    """
    Разобрать строку вида "номер:0xзначение" (номер десятичный, значение в HEX).
    Напр. "3:0xaa" -> FuseWrite(index=3, value=0xAA).
    """
    tokens = spec.split(":")
    for i, tok in enumerate(tokens):
        logger.debug("Fuse[%d]: %s", i, tok)
    if len(tokens) != 2:
        raise FuseParseError(f"Parse fuse str '{spec}' failed: token count {len(tokens)} != 2")

    idx_tok, val_tok = (t.strip() for t in tokens)
    try:
        index = int(idx_tok, 10)
        value = int(val_tok, 16)
    except ValueError as exc:
        raise FuseParseError(f"Parse fuse str '{spec}' failed: {exc}") from exc

    if not 0 <= index <= 0xFF:
        raise FuseParseError(f"fuse index {index} out of range 0..255")
    if not 0 <= value <= 0xFF:
        raise FuseParseError(f"fuse value {value:#x} is not a single byte")
    return FuseWrite(index=index, value=value)


def write_fuse(driver, fuse: FuseWrite) -> None:
    try:
        driver.write_fuse(fuse.index, fuse.value)
    except DriverError as exc:
        raise FuseWriteError.from_driver(f"write fuse {fuse.index}", exc) from exc
    logger.info("Write Fuse[%d]: %02x", fuse.index, fuse.value)
