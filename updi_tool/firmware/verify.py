# firmware/verify.py
from __future__ import annotations
import logging

from ..errors import DriverError, DriverIOError, MismatchError
from .hexfile import HexImage

logger = logging.getLogger(__name__)


def verify(driver, image: HexImage) -> None:
    """
    Сравнить образ с содержимым flash.
    Останавливается на первом несовпадении (MismatchError).
    """
    try:
        rdata = driver.read_flash(image.addr_from, len(image))
    except DriverError as exc:
        raise DriverIOError.from_driver("read flash for verify failed", exc) from exc

    if len(rdata) != len(image):
        raise DriverIOError(f"short flash read: {len(rdata)} of {len(image)} bytes")

    for i, (want, got) in enumerate(zip(image.data, rdata)):
        if want != got:
            logger.debug("check flash data failed at %d, %02x-%02x", i, want, got)
            raise MismatchError(i, want, got)

    logger.info("Flash data verified (%d bytes at %04x)", len(image), image.addr_from)
