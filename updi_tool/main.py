from __future__ import annotations
import json
import logging
from datetime import datetime, timezone
from pathlib import Path

import typer
from rich import print
from rich.logging import RichHandler
from rich.markup import escape
from serial.tools import list_ports

from .config import APP_NAME, DEFAULT_BAUDRATE, LOG_FILE, SIM_STORE
from .firmware.map import SIM_DEVICES
from .mem_tools import format_hexdump
from .programmer import Actions, RunOptions, run

app = typer.Typer(add_completion=False, help=f"{APP_NAME}: прошивка AVR по UPDI через обычный UART.")

_LEVELS = {0: logging.WARNING, 1: logging.INFO}


def _setup_logging(verbose: int):
    logging.basicConfig(
        level=_LEVELS.get(verbose, logging.DEBUG),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(show_path=False)],
        force=True,
    )


def _log_event(kind: str, payload: dict):
    LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
    record = {
        "ts": datetime.now(timezone.utc).isoformat(),
        "kind": kind,
        "payload": payload,
    }
    with open(LOG_FILE, "a", encoding="utf-8") as f:
        f.write(json.dumps(record, ensure_ascii=False, default=str) + "\n")


@app.command()
def ports():
    """Показать доступные COM-порты."""
    found = list_ports.comports()
    if not found:
        print("[yellow]Порты не найдены.[/]")
        return
    for p in found:
        print(f"[cyan]{p.device}[/] - {p.description}")


@app.command()
def devices():
    """Показать устройства, которые умеет симулятор (--sim)."""
    for dev in SIM_DEVICES.values():
        flash = dev.flash
        print(f"[cyan]{dev.name}[/] - flash {flash.flash_start:#06x}, "
              f"{flash.flash_size} байт, страница {flash.flash_pagesize}")


@app.command("run")
def run_cmd(
    device: str = typer.Option(None, "-d", "--device", help="Целевой чип, напр. tiny817"),
    comport: str = typer.Option(None, "-c", "--comport", help="COM-порт (Windows: COMx | *nix: /dev/ttyX)"),
    baudrate: int = typer.Option(DEFAULT_BAUDRATE, "-b", "--baudrate", help="Скорость порта"),
    file: Path = typer.Option(None, "-f", "--file", help="Intel HEX файл"),
    unlock: bool = typer.Option(False, "-u", "--unlock", help="Снять блокировку (chip erase при необходимости)"),
    erase: bool = typer.Option(False, "-e", "--erase", help="Стереть чип"),
    program: bool = typer.Option(False, "-p", "--program", help="Прошить HEX файл"),
    check: bool = typer.Option(False, "-k", "--check", help="Сравнить HEX файл с flash"),
    save: bool = typer.Option(False, "-s", "--save", help="Сохранить flash в <file>.save"),
    fuses: str = typer.Option(None, "-F", "--fuses", help="Записать фьюз (синтаксис: номер:0xзначение)"),
    read: str = typer.Option(None, "-r", "--read", help="Прямое чтение памяти: 'адрес;длина'"),
    write: str = typer.Option(None, "-w", "--write", help="Прямая запись памяти: 'адрес;b0;b1;...'"),
    verbose: int = typer.Option(1, "-v", "--verbose", help="0 - только ошибки, 1 - ход работы, 2 - отладка"),
    sim: bool = typer.Option(False, "--sim", help="Симулятор вместо реального чипа"),
    sim_store: Path = typer.Option(SIM_STORE, "--sim-store", help="Файл состояния симулятора"),
):
    """
    Прошивка/проверка/сохранение flash, фьюзы и прямой доступ к памяти.
    Шаги выполняются в порядке: unlock, erase, fuse, program/check, save, read, write.
    """
    _setup_logging(verbose)
    options = RunOptions(
        device=device,
        comport=comport,
        baudrate=baudrate,
        file=file,
        actions=Actions(unlock=unlock, erase=erase, program=program, check=check, save=save),
        fuses=fuses,
        read=read,
        write=write,
        sim_store=sim_store if sim else None,
    )
    result = run(options)
    report = result.report

    if report.read_data is not None:
        print("[bold]Read:[/]")
        print(escape(format_hexdump(report.read_data, report.read_address)))
    if report.readback is not None:
        print("[bold]Readback:[/]")
        print(escape(format_hexdump(report.readback, report.write_address)))
    if report.saved_to is not None:
        print(f"[green]Сохранено:[/] {report.saved_to}")

    _log_event("run", {
        "device": device,
        "comport": comport,
        "file": file,
        "exit_code": result.exit_code,
        "stage": result.error.stage.title if result.error and result.error.stage else None,
        "error": str(result.error) if result.error else None,
    })

    if not result.ok:
        code = f", код драйвера {result.error.code}" if result.error.code is not None else ""
        print(f"[red]Ошибка на этапе {result.error.stage.title}:[/] {escape(str(result.error))}{code}")
        raise typer.Exit(code=result.exit_code)

    if report.verified:
        print("[bold green]Flash совпадает с HEX файлом.[/]")
    print("[green]Готово.[/]")


if __name__ == "__main__":
    app()
