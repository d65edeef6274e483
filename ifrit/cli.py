"""
Ifrit CLI — one command for every monetization module

Each module keeps its own argparse ``main()``; this dispatcher only picks the
module, hands it the remaining arguments and turns its exit into a return code.

Usage:
    ifrit                         # module overview
    ifrit status [--json]         # credentials + importable modules
    ifrit version [--json]
    ifrit <module> <command> [options]

Examples:
    ifrit cpm predict --niche insurance --month 11 --geo US
    ifrit revenue import --file points.json --site techblog
    ifrit adsense report --days 7
    ifrit drafts scan --dir websites/example.com/drafts
    ifrit email config --domain example.com --provider resend
"""

from __future__ import annotations

import argparse
import contextlib
import difflib
import importlib
import json
import logging
import os
import platform
import sys
import traceback
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Optional

from ifrit import __version__

logger = logging.getLogger("cli")

# ---------------------------------------------------------------------------
# Terminal styling
# ---------------------------------------------------------------------------

_PLAIN = bool(os.environ.get("NO_COLOR")) or not sys.stdout.isatty()


def _style(code: str, text: str) -> str:
    return text if _PLAIN else f"\033[{code}m{text}\033[0m"


def _bold(text: str) -> str:
    return _style("1", text)


def _accent(text: str) -> str:
    return _style("36", text)


def _mark(ok: bool) -> str:
    if _PLAIN:
        return "[OK]  " if ok else "[MISS]"
    return _style("32", "●") if ok else _style("31", "●")


# ---------------------------------------------------------------------------
# Module registry
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ModuleEntry:
    """A delegating sub-command: ``ifrit <name> ...`` runs ``<module>.<entry>()``."""
    module: str
    summary: str
    commands: tuple[str, ...]
    deps: tuple[str, ...] = ()
    entry: str = "main"

    @property
    def prog(self) -> str:
        return self.module.rsplit(".", 1)[-1]

    def load(self) -> Callable[[], Any]:
        return getattr(importlib.import_module(self.module), self.entry)


MODULE_REGISTRY: dict[str, ModuleEntry] = {
    "cpm": ModuleEntry(
        module="ifrit.cpm_modeler",
        summary="Predict CPM and monthly ad revenue by niche",
        commands=("predict", "estimate", "top"),
    ),
    "revenue": ModuleEntry(
        module="ifrit.revenue_tracker",
        summary="Aggregate revenue by site, content, campaign and author",
        commands=("import", "events"),
    ),
    "adsense": ModuleEntry(
        module="ifrit.adsense_client",
        summary="Live earnings from the AdSense Management API",
        commands=("status", "report", "pages"),
        deps=("google-api-python-client", "google-auth", "python-dotenv", "requests"),
    ),
    "drafts": ModuleEntry(
        module="ifrit.draft_router",
        summary="Scan drafts folders and route articles to categories",
        commands=("scan", "route", "history"),
    ),
    "email": ModuleEntry(
        module="ifrit.email_deliverability",
        summary="SPF, DKIM, DMARC and MX records for site email",
        commands=("providers", "config", "spf"),
    ),
}


@dataclass
class Options:
    """Flags given ahead of the target, the target itself and its arguments."""
    json: bool = False
    quiet: bool = False
    verbose: bool = False
    target: Optional[str] = None
    rest: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------

class Console:
    def __init__(self, opts: Options) -> None:
        self.opts = opts

    def line(self, text: str = "") -> None:
        if not self.opts.quiet:
            print(text)

    def header(self, title: str) -> None:
        self.line()
        self.line(_bold(title))
        self.line("=" * len(title))

    def dump(self, data: Any) -> None:
        print(json.dumps(data, indent=2, default=str))


# ---------------------------------------------------------------------------
# Delegation
# ---------------------------------------------------------------------------

@contextlib.contextmanager
def _argv_for(prog: str, args: list[str]) -> Iterator[None]:
    saved = sys.argv
    sys.argv = [prog, *args]
    try:
        yield
    finally:
        sys.argv = saved


def _exit_code(exc: SystemExit) -> int:
    if exc.code is None:
        return 0
    if isinstance(exc.code, int):
        return exc.code
    # sys.exit("message") prints the message and means failure
    return 1


def run_module(name: str, args: list[str], console: Console) -> int:
    """Run a registered module's CLI with *args* and return its exit code."""
    entry_spec = MODULE_REGISTRY[name]
    try:
        entry = entry_spec.load()
    except ModuleNotFoundError as exc:
        console.line(f"{_mark(False)} '{name}' needs a missing package: {exc.name or exc}")
        if entry_spec.deps:
            console.line(f"   pip install {' '.join(entry_spec.deps)}")
        return 1

    with _argv_for(entry_spec.prog, args):
        try:
            entry()
        except SystemExit as exc:
            return _exit_code(exc)
        except KeyboardInterrupt:
            console.line("\nAborted.")
            return 130
        except Exception as exc:
            logger.debug("%s failed", name, exc_info=True)
            if console.opts.verbose:
                traceback.print_exc()
            else:
                console.line(f"{_mark(False)} {name}: {exc}")
            return 1
    return 0


# ---------------------------------------------------------------------------
# Built-in commands
# ---------------------------------------------------------------------------

def collect_status() -> dict[str, Any]:
    from ifrit.adsense_client import AdSenseCredentials

    modules: dict[str, bool] = {}
    for name, entry_spec in MODULE_REGISTRY.items():
        try:
            entry_spec.load()
        except ImportError:
            modules[name] = False
        else:
            modules[name] = True

    return {
        "version": __version__,
        "adsense_credentials": AdSenseCredentials.from_env().is_complete(),
        "data_dir": os.getenv("IFRIT_DATA_DIR", "data"),
        "modules": modules,
    }


def show_status(console: Console) -> int:
    status = collect_status()
    if console.opts.json:
        console.dump(status)
        return 0

    console.header("Ifrit status")
    creds = status["adsense_credentials"]
    console.line(f"  {_mark(creds)} AdSense credentials "
                 f"{'configured' if creds else 'missing (set ADSENSE_* or .env)'}")
    console.line(f"  data dir: {status['data_dir']}")
    for name, ok in status["modules"].items():
        console.line(f"  {_mark(ok)} {name}")
    console.line()
    return 0


def show_version(console: Console) -> int:
    python = platform.python_version()
    if console.opts.json:
        console.dump({"version": __version__, "python": python, "platform": platform.platform()})
        return 0
    console.line(f"ifrit {__version__} (Python {python}, {platform.system()})")
    return 0


def show_overview(console: Console) -> int:
    console.line()
    console.line(f"  {_bold(_accent('ifrit'))} {__version__}  monetization toolkit")
    console.line()
    console.line("  ifrit <module> <command> [options]")
    console.line()
    width = max(len(n) for n in MODULE_REGISTRY)
    for name, entry_spec in MODULE_REGISTRY.items():
        console.line(f"    {_accent(name.ljust(width))}  {entry_spec.summary}")
    console.line()
    console.line("  Also: status, version.  Global flags before the module: --json --quiet --verbose")
    console.line()
    return 0


def show_module(name: str, console: Console) -> int:
    entry_spec = MODULE_REGISTRY[name]
    console.line()
    console.line(f"  {_bold('ifrit ' + name)}: {entry_spec.summary}")
    console.line()
    for cmd in entry_spec.commands:
        console.line(f"    ifrit {name} {_accent(cmd)}")
    console.line()
    console.line(f"  Options per command: ifrit {name} <command> --help")
    console.line()
    return 0


BUILTINS: dict[str, Callable[[Console], int]] = {
    "status": show_status,
    "version": show_version,
    "--version": show_version,
    "help": show_overview,
    "-h": show_overview,
    "--help": show_overview,
}


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def parse_options(argv: list[str]) -> Options:
    """Split *argv* into leading global flags, the target and its arguments.

    Anything after the target belongs to the target, so ``ifrit cpm predict
    --json`` passes ``--json`` to the CPM module rather than to the dispatcher.
    """
    split = next(
        (i for i, a in enumerate(argv) if not a.startswith("-") or a in BUILTINS),
        len(argv),
    )
    parser = argparse.ArgumentParser(prog="ifrit", add_help=False)
    parser.add_argument("--json", action="store_true")
    parser.add_argument("--quiet", action="store_true")
    parser.add_argument("--verbose", action="store_true")
    flags, stray = parser.parse_known_args(argv[:split])

    target = argv[split] if split < len(argv) else None
    return Options(
        json=flags.json,
        quiet=flags.quiet,
        verbose=flags.verbose,
        target=target,
        rest=stray + argv[split + 1:],
    )


def main(argv: Optional[list[str]] = None) -> int:
    """Dispatch and return an exit code (0 ok, 1 failure, 2 usage error)."""
    opts = parse_options(sys.argv[1:] if argv is None else list(argv))
    console = Console(opts)

    if opts.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
            datefmt="%H:%M:%S",
        )

    if opts.target is None:
        return show_overview(console)

    target = opts.target.lower()
    if target in BUILTINS:
        return BUILTINS[target](console)

    if target not in MODULE_REGISTRY:
        console.line(f"{_mark(False)} Unknown command: {target}")
        close = difflib.get_close_matches(target, [*MODULE_REGISTRY, "status", "version"], n=3)
        if close:
            console.line(f"   Did you mean: {', '.join(close)}?")
        return 2

    if not opts.rest:
        return show_module(target, console)
    return run_module(target, opts.rest, console)


def cli() -> None:
    """console_scripts entry point."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nAborted.")
        sys.exit(130)


if __name__ == "__main__":
    cli()
