"""Command-line interface for ChordTab.

Provides commands for:
- analyze: Chords, key, tempo and bar layout of a recording
- info: Show audio file information
"""

import logging
import time
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from .config import INSTRUMENTS, SNAP_STRENGTHS, AnalysisConfig

app = typer.Typer(
    name="chordtab",
    help="Chord, key and tempo analysis for guitar and bass tabs",
    rich_markup_mode="markdown",
)
console = Console()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=verbose)],
        force=True,
    )


@app.command()
def analyze(
    input_file: Path = typer.Argument(..., help="Input audio file (WAV, FLAC, MP3, ...)"),
    json_path: Optional[Path] = typer.Option(
        None, "--json", help="Write the full result as JSON to this path"
    ),
    transpose: int = typer.Option(
        0, "-t", "--transpose", help="Transpose the result by N semitones"
    ),
    instrument: str = typer.Option(
        "acoustic", "-i", "--instrument", help="Instrument profile: acoustic/electric/bass"
    ),
    snap: str = typer.Option(
        "medium", "-s", "--snap", help="Key snapping strength: soft/medium/hard/off"
    ),
    max_slots: int = typer.Option(
        4, "--max-slots", help="Maximum chord slots per bar (1-4)"
    ),
    verbose: bool = typer.Option(
        False, "-v", "--verbose", help="Verbose output"
    ),
):
    """Analyze a recording into a bar-by-bar chord chart.

    **Examples:**

        chordtab analyze song.wav

        chordtab analyze song.flac --transpose -2 --snap hard

        chordtab analyze song.wav --json song.json --max-slots 2
    """
    from .errors import ChordTabError
    from .exporter import AnalysisExporter, chords_to_text
    from .input import AudioLoader
    from .pipeline import ChordTabAnalyzer
    from .processing import transpose_result

    _setup_logging(verbose)

    if instrument not in INSTRUMENTS:
        console.print(f"[red]Error: Unknown instrument '{instrument}'. Use one of {', '.join(INSTRUMENTS)}[/red]")
        raise typer.Exit(1)
    if snap != "off" and snap not in SNAP_STRENGTHS:
        console.print(f"[red]Error: Unknown snap strength '{snap}'. Use soft, medium, hard or off[/red]")
        raise typer.Exit(1)
    if not 1 <= max_slots <= 4:
        console.print("[red]Error: --max-slots must be between 1 and 4[/red]")
        raise typer.Exit(1)

    config = AnalysisConfig()
    config.postprocess.instrument = instrument
    config.postprocess.snap_strength = snap
    config.segmenter.max_slots = max_slots

    try:
        console.print(f"[blue]Loading audio:[/blue] {input_file}")
        loader = AudioLoader()
        audio, sr = loader.load(input_file)
        console.print(f"   Duration: {loader.get_duration(audio, sr):.2f}s at {sr} Hz")
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    analyzer = ChordTabAnalyzer(config)
    started = time.time()
    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TimeElapsedColumn(),
            console=console,
            transient=True,
        ) as progress:
            task = progress.add_task("Analyzing", total=100)

            def report(stage: str, percent: float) -> None:
                progress.update(task, description=f"Analyzing ({stage})", completed=percent)

            result = analyzer.analyze(audio, sr, progress=report)
    except ChordTabError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    if transpose:
        result = transpose_result(result, transpose)

    console.print(f"\n[bold blue]Analysis: {input_file.name}[/bold blue]")
    if result.is_empty:
        console.print("[yellow]No chords detected; showing defaults[/yellow]")
    console.print(f"   Key: [green]{result.key.name}[/green]")
    console.print(f"   Tempo: [green]{result.tempo.bpm} BPM[/green] (beat offset {result.tempo.offset:+.3f}s)")
    console.print(f"   Tuning: A4 = {result.reference_a4:.2f} Hz")
    if transpose:
        console.print(f"   Transposed by {transpose:+d} semitones")

    if result.bars:
        _show_bars_table(result.bars)
        if verbose:
            console.print(chords_to_text(result.bars))

    if json_path is not None:
        AnalysisExporter().export(result, json_path)
        console.print(f"\n[green]Saved:[/green] {json_path}")

    console.print(f"\n[green][OK] Analysis complete in {time.time() - started:.2f}s[/green]")


@app.command()
def info(
    input_file: Path = typer.Argument(..., help="Input audio file"),
):
    """Show information about an audio file."""
    from .input import AudioLoader

    loader = AudioLoader()
    try:
        header = loader.read_info(input_file)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    except RuntimeError as e:
        # libsndfile cannot read compressed formats such as MP3 on every platform
        console.print(f"[red]Error: Cannot read header of {input_file.name}: {e}[/red]")
        raise typer.Exit(1)

    console.print(f"\n[bold]Audio Info:[/bold] {input_file.name}")
    console.print(f"  Duration: {header.duration:.2f} seconds")
    console.print(f"  Sample rate: {header.sample_rate} Hz")
    console.print(f"  Channels: {header.channels}")
    console.print(f"  Samples: {header.frames:,}")


def _show_bars_table(bars):
    """Display bars and their chord slots in a table."""
    table = Table(title="Chord Chart")
    table.add_column("Bar", style="cyan", justify="right")
    table.add_column("Time", style="yellow")
    table.add_column("Slots", style="green")
    table.add_column("Edited", style="magenta")

    for bar in bars:
        slots = "  ".join(
            f"{slot.name or 'N.C.'} ({slot.beat_length})" for slot in bar.slots
        )
        edited = "yes" if any(slot.manual for slot in bar.slots) else ""
        table.add_row(str(bar.index + 1), f"{bar.start_time:.2f}s", slots, edited)

    console.print(table)


def main():
    """Entry point."""
    app()


if __name__ == "__main__":
    main()
