# programmer.py
"""
Сценарий программирования: info -> [unlock] -> erase -> fuse -> program/check
-> save -> read -> write. Любая ошибка прерывает остаток сценария, но выход
из режима программирования и закрытие сессии выполняются всегда и ровно один раз.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Callable

from .config import DEFAULT_BAUDRATE
from .errors import (
    ConfigError,
    DeviceInfoError,
    DriverError,
    DriverIOError,
    EraseError,
    Stage,
    UnlockError,
    UpdiToolError,
    stage,
)
from .firmware.hexfile import load_hex, save_flash, unload_hex
from .firmware.io import NvmDriver, open_driver
from .firmware.verify import verify
from .fuses import FuseWrite, parse_fuse_spec, write_fuse
from .mem_tools import (
    ReadCommand,
    WriteCommand,
    direct_read,
    direct_write,
    parse_read_command,
    parse_write_command,
)

logger = logging.getLogger(__name__)


@dataclass
class Actions:
    unlock: bool = False
    erase: bool = False
    program: bool = False
    check: bool = False
    save: bool = False

    @property
    def needs_progmode(self) -> bool:
        return self.unlock or self.erase or self.program

    def any(self) -> bool:
        return self.unlock or self.erase or self.program or self.check or self.save


@dataclass
class RunOptions:
    device: str | None
    comport: str | None = None
    baudrate: int = DEFAULT_BAUDRATE
    file: Path | None = None
    actions: Actions = field(default_factory=Actions)
    fuses: str | None = None
    read: str | None = None
    write: str | None = None
    sim_store: Path | None = None


@dataclass
class RunReport:
    device_info: dict | None = None
    verified: bool = False
    saved_to: Path | None = None
    read_address: int | None = None
    read_data: bytes | None = None
    write_address: int | None = None
    readback: bytes | None = None


@dataclass
class RunResult:
    exit_code: int
    report: RunReport
    error: UpdiToolError | None = None

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


@dataclass
class Plan:
    """Опции после проверки: все строковые команды уже разобраны."""
    options: RunOptions
    fuse: FuseWrite | None = None
    read: ReadCommand | None = None
    write: WriteCommand | None = None


def prepare(options: RunOptions) -> Plan:
    """Проверка опций и разбор команд ДО любого обращения к устройству."""
    with stage(Stage.CONFIG):
        if not options.device:
            raise ConfigError("No DEV Name appointed")
        if options.sim_store is None and not options.comport:
            raise ConfigError("No COM PORT appointed")
        if options.file is not None and not options.actions.any():
            # файл без флагов = прошить; опции вызывающего не трогаем
            options = replace(options, actions=replace(options.actions, program=True))
        if options.actions.save and options.file is None:
            raise ConfigError("Save needs a base file name (-f)")

    plan = Plan(options=options)
    if options.fuses:
        with stage(Stage.FUSE):
            plan.fuse = parse_fuse_spec(options.fuses)
    if options.read:
        with stage(Stage.READ):
            plan.read = parse_read_command(options.read)
    if options.write:
        with stage(Stage.WRITE):
            plan.write = parse_write_command(options.write)
    return plan


class Programmer:
    def __init__(self, driver: NvmDriver, plan: Plan):
        self.driver = driver
        self.plan = plan
        self.report = RunReport()

    @property
    def actions(self) -> Actions:
        return self.plan.options.actions

    def execute(self) -> RunReport:
        opts = self.plan.options
        with stage(Stage.DEVICE_INFO):
            self.report.device_info = self.device_info()

        if self.actions.needs_progmode:
            with stage(Stage.UNLOCK):
                self.enter_progmode()

        if self.actions.erase:
            with stage(Stage.ERASE):
                self.erase()

        if self.plan.fuse is not None:
            with stage(Stage.FUSE):
                write_fuse(self.driver, self.plan.fuse)

        if self.actions.program or self.actions.check:
            if opts.file is None:
                logger.warning("No hex file given, program/check skipped")
            else:
                with stage(Stage.FLASH):
                    self.flash(opts.file, self.actions.program)
                self.report.verified = True

        if self.actions.save:
            with stage(Stage.SAVE):
                self.report.saved_to = save_flash(self.driver, opts.file).path

        if self.plan.read is not None:
            with stage(Stage.READ):
                self.report.read_address = self.plan.read.address
                self.report.read_data = direct_read(self.driver, self.plan.read)

        if self.plan.write is not None:
            with stage(Stage.WRITE):
                self.report.write_address = self.plan.write.address
                self.report.readback = direct_write(self.driver, self.plan.write)

        return self.report

    # ---- шаги ----
    def device_info(self) -> dict:
        try:
            info = self.driver.device_info()
        except DriverError as exc:
            raise DeviceInfoError.from_driver("nvm get device info failed", exc) from exc
        logger.info("Device info: %s", info)
        return info

    def enter_progmode(self) -> None:
        try:
            self.driver.enter_progmode()
        except DriverError as exc:
            logger.warning("Device is locked(%s). Performing unlock with chip erase.", exc.code)
            try:
                self.driver.unlock()
            except DriverError as exc2:
                raise UnlockError.from_driver("NVM unlock device failed", exc2) from exc2

        try:
            self.report.device_info = self.driver.device_info()
        except DriverError as exc:
            raise UnlockError.from_driver("device info in program mode failed", exc) from exc

    def erase(self) -> None:
        try:
            self.driver.chip_erase()
        except DriverError as exc:
            raise EraseError.from_driver("NVM chip erase failed", exc) from exc
        logger.info("Chip erased")

    def flash(self, file: Path, program: bool) -> None:
        try:
            geometry = self.driver.flash_info()
        except DriverError as exc:
            raise DriverIOError.from_driver("nvm get flash info failed", exc) from exc

        image = load_hex(file, geometry)
        try:
            if program:
                try:
                    self.driver.chip_erase()
                    self.driver.write_flash(image.addr_from, bytes(image.data))
                except DriverError as exc:
                    raise DriverIOError.from_driver("nvm write flash failed", exc) from exc
                logger.info("Programmed %d bytes at %04x", len(image), image.addr_from)
            verify(self.driver, image)
        finally:
            unload_hex(image)
        logger.info("Flash check finished")


def close_session(driver: NvmDriver) -> None:
    """Единственная точка выхода: покинуть режим программирования и закрыть сессию."""
    try:
        driver.leave_progmode()
    except DriverError as exc:
        logger.warning("leave progmode failed: %s", exc)
    finally:
        driver.close()


def run(options: RunOptions,
        connect: Callable[..., NvmDriver] = open_driver) -> RunResult:
    report = RunReport()
    try:
        plan = prepare(options)
        with stage(Stage.INIT):
            driver = connect(options.device, options.comport, options.baudrate, options.sim_store)
    except UpdiToolError as exc:
        return _failed(exc, report)

    programmer = Programmer(driver, plan)
    try:
        programmer.execute()
    except UpdiToolError as exc:
        return _failed(exc, programmer.report)
    finally:
        close_session(driver)
    return RunResult(exit_code=0, report=programmer.report)


def _failed(exc: UpdiToolError, report: RunReport) -> RunResult:
    if exc.stage is None:
        exc.stage = Stage.CONFIG
    st = exc.stage
    logger.error("%s failed: %s%s", st.title, exc,
                 f" (driver code {exc.code})" if exc.code is not None else "")
    return RunResult(exit_code=st.exit_code, report=report, error=exc)
