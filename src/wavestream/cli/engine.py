"""Command-line entry point for the streaming wave engine.

The wavestream-engine process runs the simulation and writes its output on
two channels:

- stderr: HEADER / PERF / ENERGY text lines (plus any diagnostics)
- stdout: raw float32 field frames

It runs until the step budget is exhausted or it is killed by its host.
"""

import logging
import sys
import time

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from wavestream.core.config import ConfigError, resolve_config
from wavestream.core.engine import DeviceError, WaveEngine
from wavestream.io.stream import FrameEmitter, stream_simulation

from .progress import format_time, print_simulation_info

console = Console(stderr=True)

logger = logging.getLogger("wavestream")


def configure_logging(verbose: bool) -> None:
    """Route wavestream log records to stderr through rich."""
    handler = RichHandler(console=console, show_path=False, markup=False)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.handlers[:] = [handler]
    logger.setLevel(logging.INFO if verbose else logging.WARNING)


@click.command()
@click.option("--nx", type=int, help="Grid width in cells (default: 512)")
@click.option("--ny", type=int, help="Grid height in cells (default: 512)")
@click.option("--dx", type=float, help="Cell spacing in meters (default: 10)")
@click.option("--dt", type=float, help="Requested time step; clamped to the CFL limit")
@click.option("--steps", type=int, help="Step budget (default: 10000)")
@click.option(
    "--frames-every",
    "--frames_every",
    "frames_every",
    type=int,
    help="Emit a frame every N steps (default: 60)",
)
@click.option("--pml", type=int, help="Sponge layer thickness in cells (default: 40)")
@click.option("--c0", type=float, help="Base wave speed in m/s (default: 3000)")
@click.option("--amp", type=float, help="Source amplitude (default: 1.0)")
@click.option("--f0", type=float, help="Source dominant frequency in Hz (default: 10)")
@click.option("--sx", type=int, help="Source column (default: grid center)")
@click.option("--sy", type=int, help="Source row (default: grid center)")
@click.option("--cfl", type=float, help="CFL safety factor (default: 0.5)")
@click.option("--model", type=str, help="Velocity model: homogeneous, two_layer, circle")
@click.option(
    "--device",
    type=click.Choice(["auto", "cuda", "mps", "cpu"]),
    default="auto",
    help="Compute device (default: auto-detect)",
)
@click.option("--verbose", "-v", is_flag=True, help="Log engine diagnostics to stderr")
@click.option("--dry-run", is_flag=True, help="Print the resolved parameters and exit")
@click.version_option(version="0.1.0", prog_name="wavestream-engine")
@click.pass_context
def main(ctx: click.Context, device: str, verbose: bool, dry_run: bool, **options):
    """Run the 2D acoustic wave engine and stream its output.

    Text analytics are written to stderr, one message per line. Field frames
    are written to stdout as raw row-major float32 arrays of nx*ny values.

    Example:

    \b
        wavestream-engine --nx 256 --ny 256 --model circle > frames.bin
    """
    configure_logging(verbose)

    try:
        config = resolve_config(options)
    except ConfigError as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}", highlight=False)
        ctx.exit(1)

    try:
        engine = WaveEngine(config, device=device)
    except DeviceError as e:
        console.print(f"[bold red]Device Error:[/bold red] {escape(str(e))}", highlight=False)
        ctx.exit(1)
    except RuntimeError as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}", highlight=False)
        ctx.exit(1)

    if dry_run:
        print_simulation_info(console, engine)
        console.print("[yellow]Dry run - simulation not executed[/yellow]")
        return

    emitter = FrameEmitter(sys.stderr, sys.stdout.buffer)

    start_time = time.time()
    try:
        completed = stream_simulation(engine, emitter)
    except KeyboardInterrupt:
        ctx.exit(130)  # Standard exit code for SIGINT
    except DeviceError as e:
        console.print(f"[bold red]Device Error:[/bold red] {escape(str(e))}", highlight=False)
        ctx.exit(1)

    runtime = time.time() - start_time
    logger.info(
        "Streamed %d steps, %d frames in %s",
        completed, emitter.frames_sent, format_time(runtime),
    )


if __name__ == "__main__":
    sys.exit(main())
