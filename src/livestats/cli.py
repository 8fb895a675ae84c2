import argparse
import contextlib
import json
import signal
import sys
import threading
import time
from pathlib import Path
from typing import IO, List, Optional

from rich.console import Console
from rich.table import Table

from . import __version__
from .config import DecayConfig, DecayConfigError
from .parsers import DEFAULT_KEY, parse_observation
from .registry import StatsRegistry
from .snapshot import Stats
from .tail import tail

DEFAULT_CLI_QUANTILES = [0.5, 0.9, 0.99]


def build_decay(args: argparse.Namespace) -> DecayConfig:
    multiplier = getattr(args, "decay", None)
    if multiplier is None:
        if getattr(args, "decay_period", None) or getattr(args, "decay_every", None):
            print("[livestats] --decay-period/--decay-every need --decay; decay disabled", file=sys.stderr)
        return DecayConfig.NEVER
    if getattr(args, "decay_period", None) and getattr(args, "decay_every", None):
        # DecayConfig rejects the combination
        return DecayConfig(multiplier, args.decay_period, args.decay_every)
    if getattr(args, "decay_period", None):
        return DecayConfig.timed(multiplier, args.decay_period)
    if getattr(args, "decay_every", None):
        return DecayConfig.counted(multiplier, args.decay_every)
    return DecayConfig.manual(multiplier)


def build_registry(args: argparse.Namespace) -> StatsRegistry:
    registry = StatsRegistry(
        default_decay=build_decay(args),
        quantiles=getattr(args, "quantiles", None) or DEFAULT_CLI_QUANTILES,
    )
    state_in = getattr(args, "state_in", None)
    if state_in:
        try:
            with open(state_in, "r", encoding="utf-8") as handle:
                registry.restore(json.load(handle))
        except FileNotFoundError:
            print(f"[livestats] state file '{state_in}' not found; starting fresh.", file=sys.stderr)
    return registry


def maybe_save_registry(registry: StatsRegistry, path: Optional[str]) -> None:
    if path:
        path_obj = Path(path)
        path_obj.parent.mkdir(parents=True, exist_ok=True)
        with path_obj.open("w", encoding="utf-8") as handle:
            json.dump(registry.snapshot(), handle, indent=2)
        print(f"Wrote state snapshot to {path_obj}", file=sys.stderr)


def feed(registry: StatsRegistry, lines, default_key: str = DEFAULT_KEY) -> int:
    """Record every parseable line; returns the number of lines skipped."""
    skipped = 0
    for lineno, line in enumerate(lines, start=1):
        try:
            parsed = parse_observation(line, default_key=default_key)
        except ValueError as exc:
            skipped += 1
            print(f"[livestats] skipped malformed line {lineno}: {exc}", file=sys.stderr)
            continue
        if parsed is None:
            continue
        key, value = parsed
        registry.live(key).add(value)
    return skipped


def _console(args: argparse.Namespace) -> Console:
    return Console(highlight=False, no_color=bool(getattr(args, "no_color", False)))


def _fmt(value: Optional[float]) -> str:
    return "-" if value is None else f"{value:.6g}"


def render_table(console: Console, snapshots: List[Stats], title: Optional[str] = None) -> None:
    if not snapshots:
        console.print("No observations.")
        return
    percentiles: List[float] = []
    for s in snapshots:
        for p in s.quantiles:
            if p not in percentiles:
                percentiles.append(p)
    table = Table(title=title)
    table.add_column("key", style="bold cyan")
    table.add_column("n", justify="right")
    for column in ("mean", "variance", "skewness", "kurtosis", "min", "max"):
        table.add_column(column, justify="right")
    for p in percentiles:
        table.add_column(f"p{p * 100:g}", justify="right", style="green")
    for s in snapshots:
        table.add_row(
            s.name,
            str(s.n),
            _fmt(s.mean),
            _fmt(s.variance),
            _fmt(s.skewness),
            _fmt(s.kurtosis),
            _fmt(s.min),
            _fmt(s.max),
            *(_fmt(s.quantiles.get(p)) for p in percentiles),
        )
    console.print(table)


def _write_json(snapshots: List[Stats], out: str) -> None:
    with open(out, "w", encoding="utf-8") as oh:
        json.dump([s.to_dict() for s in snapshots], oh, indent=2)
    print(f"Wrote summary JSON to {out}")


def _open_input(path: str) -> IO[str]:
    if path == "-":
        return contextlib.nullcontext(sys.stdin)  # type: ignore[return-value]
    return open(path, "r", encoding="utf-8", errors="replace")


def cmd_summarize(args: argparse.Namespace) -> int:
    try:
        registry = build_registry(args)
    except DecayConfigError as exc:
        print(f"[livestats] invalid decay settings: {exc}", file=sys.stderr)
        return 2
    try:
        with _open_input(args.file) as handle:
            skipped = feed(registry, handle, default_key=args.key)
    except FileNotFoundError:
        print(f"[livestats] file not found: {args.file}", file=sys.stderr)
        return 2
    snapshots = registry.get()
    if args.json:
        _write_json(snapshots, args.json)
    else:
        render_table(_console(args), snapshots)
    if skipped:
        print(f"[livestats] summary: skipped_lines={skipped}", file=sys.stderr)
    maybe_save_registry(registry, args.state_out)
    return 0


def cmd_tail(args: argparse.Namespace) -> int:
    try:
        registry = build_registry(args)
    except DecayConfigError as exc:
        print(f"[livestats] invalid decay settings: {exc}", file=sys.stderr)
        return 2
    console = _console(args)
    stop_event = threading.Event()

    def _sigterm_handler(signum, frame):  # pragma: no cover - exercised indirectly
        stop_event.set()

    try:
        signal.signal(signal.SIGTERM, _sigterm_handler)
    except ValueError:  # pragma: no cover - not in main thread
        pass

    follow = not args.no_follow
    last_report = time.monotonic()
    try:
        for line in tail(args.file, follow=follow, stop_event=stop_event, from_start=args.from_start or not follow):
            feed(registry, [line], default_key=args.key)
            if args.interval and time.monotonic() - last_report >= args.interval:
                render_table(console, registry.get(), title=time.strftime("%H:%M:%S"))
                last_report = time.monotonic()
    except KeyboardInterrupt:  # pragma: no cover - interactive
        pass
    snapshots = registry.get()
    if args.json:
        _write_json(snapshots, args.json)
    else:
        render_table(console, snapshots)
    maybe_save_registry(registry, args.state_out)
    return 0


def cmd_bench(args: argparse.Namespace) -> int:
    from .bench import run, synthetic_values

    run(
        synthetic_values(args.values, seed=args.seed),
        threads=args.threads,
        quantiles=args.quantiles or DEFAULT_CLI_QUANTILES,
        readers=args.readers,
    )
    return 0


def cmd_serve(args: argparse.Namespace) -> int:  # pragma: no cover - integration feature
    try:
        import uvicorn
        from .service import build_app
    except Exception:  # noqa: BLE001
        print("'serve' requires uvicorn and fastapi. Install with `pip install livestats[server]`.", file=sys.stderr)
        return 2
    try:
        registry = build_registry(args)
    except DecayConfigError as exc:
        print(f"[livestats] invalid decay settings: {exc}", file=sys.stderr)
        return 2

    stop_event = threading.Event()

    def _snapshot_loop() -> None:
        while not stop_event.wait(max(5, args.interval)):
            try:
                maybe_save_registry(registry, args.state_out)
            except OSError as snap_exc:
                print(f"[livestats] snapshot failed: {snap_exc}", file=sys.stderr)

    if args.state_out:
        threading.Thread(target=_snapshot_loop, daemon=True).start()

    try:
        uvicorn.run(build_app(registry), host=args.host, port=args.port, log_level="info")
    finally:
        stop_event.set()
        maybe_save_registry(registry, args.state_out)
    return 0


def _add_stats_options(p: argparse.ArgumentParser) -> None:
    p.add_argument("--quantiles", nargs="+", type=float, help="Percentiles to track, in (0,1) (default: 0.5 0.9 0.99)")
    p.add_argument("--key", default=DEFAULT_KEY, help="Key for lines that carry only a value")
    p.add_argument("--decay", type=float, help="Decay multiplier in [0,1) applied per decay step (e.g. 0.95)")
    p.add_argument("--decay-period", type=float, help="Seconds between decay steps")
    p.add_argument("--decay-every", type=int, help="Apply a decay step every N observations")
    p.add_argument("--state-in", help="Resume stats from this JSON snapshot")
    p.add_argument("--state-out", help="Write stats state to this JSON snapshot on exit")
    p.add_argument("--json", help="Write the final summary as JSON to this path instead of a table")
    p.add_argument("--no-color", action="store_true", help="Disable colorized output")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="livestats", description="Streaming percentiles and moments for numeric series.")
    parser.add_argument(
        "--version",
        action="version",
        version=f"livestats {__version__}",
        help="Show version and exit",
    )
    sub = parser.add_subparsers(dest="cmd")

    summarize_parser = sub.add_parser("summarize", help="Summarize numeric observations from a file ('-' for stdin)")
    summarize_parser.add_argument("file")
    _add_stats_options(summarize_parser)
    summarize_parser.set_defaults(func=cmd_summarize)

    tail_parser = sub.add_parser("tail", help="Follow a growing file of observations and report stats periodically")
    tail_parser.add_argument("file")
    tail_parser.add_argument("--no-follow", action="store_true", help="Process existing content once and exit")
    tail_parser.add_argument("--from-start", action="store_true", help="Read existing content before following")
    tail_parser.add_argument("--interval", type=float, default=10.0, help="Seconds between reports (0 disables)")
    _add_stats_options(tail_parser)
    tail_parser.set_defaults(func=cmd_tail)

    bench_parser = sub.add_parser("bench", help="Run a quick multi-threaded insertion benchmark")
    bench_parser.add_argument("--values", type=int, default=100000, help="Synthetic values to record")
    bench_parser.add_argument("--threads", type=int, default=4, help="Writer threads")
    bench_parser.add_argument("--readers", type=int, default=1, help="Concurrent reader threads")
    bench_parser.add_argument("--quantiles", nargs="+", type=float, help="Percentiles to track")
    bench_parser.add_argument("--seed", type=int, default=0)
    bench_parser.set_defaults(func=cmd_bench)

    serve_parser = sub.add_parser("serve", help="Run HTTP service (requires livestats[server])")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8080)
    serve_parser.add_argument("--interval", type=int, default=60, help="Snapshot interval seconds")
    _add_stats_options(serve_parser)
    serve_parser.set_defaults(func=cmd_serve)

    version_parser = sub.add_parser("version", help="Show version and exit")
    version_parser.set_defaults(func=lambda _: (print(f"livestats {__version__}"), 0)[1])

    return parser


def main() -> int:
    parser = build_parser()
    args = parser.parse_args()
    if not getattr(args, "cmd", None):
        parser.print_help()
        return 0
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
