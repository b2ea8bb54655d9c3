from __future__ import annotations
import sys
import updi_tool.main as _cli_mod


def main():
    if len(sys.argv) == 1:
        # без аргументов - справка, как у исходной утилиты
        sys.argv.append("--help")
    _cli_mod.app()


if __name__ == "__main__":
    main()
