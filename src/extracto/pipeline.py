from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

from .config import get_settings
from .errors import ExtractoError, UsageLimitExceededError
from .service import PARSERS, PdfParsingService
from .usage import InMemoryUsageTracker

EXIT_OK = 0
EXIT_UNSUPPORTED_BANK = 2
EXIT_QUOTA = 3


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Extracto: resumen bancario PDF -> movimientos")
    parser.add_argument("file", help="Ruta al PDF (o al .txt ya extraído con --text)")
    parser.add_argument("--bank", required=True, help=f"Banco: {', '.join(PARSERS)}")
    parser.add_argument("--out", default="", help="Ruta de salida JSON (opcional)")
    parser.add_argument("--user", default="cli", help="Usuario para la cuota mensual")
    parser.add_argument("--text", action="store_true", help="El archivo ya es texto extraído")
    parser.add_argument("--verbose", action="store_true", help="Logs de debug")
    args = parser.parse_args(argv)

    settings = get_settings()
    logging.basicConfig(
        level="DEBUG" if args.verbose else settings.LOG_LEVEL,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True)],
    )

    path = Path(args.file)
    if not path.exists():
        raise SystemExit(f"No existe el archivo: {path}")

    console = Console()
    console.print(f"Procesando: {path} ({args.bank})", style="bold")

    service = PdfParsingService(InMemoryUsageTracker(), settings=settings)
    try:
        if args.text:
            result = service.parse_text(path.read_text(encoding="utf-8"), args.bank)
        else:
            result = service.parse(path.read_bytes(), args.bank, args.user)
    except UsageLimitExceededError as exc:
        console.print(str(exc), style="bold red")
        return EXIT_QUOTA
    except ExtractoError as exc:
        console.print(str(exc), style="bold red")
        return 1

    if result is None:
        console.print(f"Banco no soportado: {args.bank}", style="bold red")
        return EXIT_UNSUPPORTED_BANK

    payload = result.to_payload()
    if args.out:
        out_path = Path(args.out)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
        console.print(f"OK -> {out_path}", style="bold green")
    else:
        print(json.dumps(payload, ensure_ascii=False, indent=2))

    console.print(f"Transacciones detectadas: {result.transaction_count()}", style="bold cyan")
    if result.warnings:
        console.print(f"Warnings: {len(result.warnings)}", style="yellow")
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
