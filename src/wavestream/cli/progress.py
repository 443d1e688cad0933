"""Parameter summary display for the wave engine.

Provides the rich table printed by ``wavestream-engine --dry-run``. Output
goes to the text channel (stderr) because stdout carries binary frames.
"""

from typing import TYPE_CHECKING

from rich.console import Console
from rich.table import Table

if TYPE_CHECKING:
    from wavestream.core.engine import WaveEngine


def format_time(seconds: float) -> str:
    """Format a run duration for the completion log line.

    Short streaming runs keep sub-second precision: "250ms", "4.2s",
    "1m 23s", "2h 15m".
    """
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, secs = divmod(int(seconds), 60)
    if minutes < 60:
        return f"{minutes}m {secs:02d}s"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes:02d}m"


def print_simulation_info(console: Console, engine: "WaveEngine"):
    """Print simulation parameters before running.

    Args:
        console: Rich console instance (bound to stderr)
        engine: Engine instance
    """
    config = engine.config

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Parameter", style="cyan")
    table.add_column("Value", style="white")

    cells_str = f"({config.num_cells / 1e6:.2f}M cells)"
    table.add_row("Grid", f"{config.nx} × {config.ny} {cells_str}")
    table.add_row("Spacing", f"{config.dx:g} m")

    timestep = f"{config.dt:.3e} s"
    if config.dt_clamped:
        timestep += f" [yellow](clamped from {config.requested_dt:.3e} s)[/yellow]"
    table.add_row("Timestep", timestep)

    total_time = config.dt * config.steps
    table.add_row("Duration", f"{config.steps} steps ({total_time:.2e} s)")
    table.add_row("Frames", f"every {config.frames_every} steps ({config.frame_bytes} bytes each)")
    table.add_row("Model", f"{config.model} (c0={config.c0:g} m/s)")
    table.add_row("Sponge", f"{config.pml} cells")
    table.add_row(
        "Source",
        f"({config.sx}, {config.sy}) f0={config.f0:g} Hz amp={config.amp:g}",
    )

    backend = "gpu" if engine.using_gpu else "cpu"
    table.add_row("Device", f"{engine.device} ({backend}, ~{engine.memory_usage_mb():.1f} MB)")

    console.print(table)
    console.print()
