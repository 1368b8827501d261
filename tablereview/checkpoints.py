"""
Human-in-the-loop checkpoints and console progress.
"""

from rich import box
from rich.table import Table

from .aggregate import first_author_surname, source_year
from .log import console
from .scheduler import is_placeholder


def checkpoint_source_review(pairs: list, config, cached_ids: set, review_name: str) -> str:
    """
    Checkpoint 1: Review the sources before any model call.

    Returns: User choice ('a'=approve, 'q'=quit)
    """
    console.print()
    console.print("=" * 78, style="bold blue")
    console.print("  TABLE-DRIVEN LITERATURE REVIEW", style="bold white")
    console.print("=" * 78, style="bold blue")

    console.print()
    console.print(f"  Review:       [bold]{review_name}[/bold]")
    console.print(f"  Provider:     {config.provider} ({config.model})")
    console.print(f"  Concurrency:  {config.fill_concurrency}")

    console.print()
    console.print("-" * 78)
    console.print("  SOURCE DOCUMENTS", style="bold")
    console.print("-" * 78)
    console.print()

    for num, (source, _) in enumerate(pairs[:10], start=1):
        cached = source.id in cached_ids
        status = "C" if cached else "-"
        style = "green" if cached else "dim"
        title = source.title or "Unknown"
        if len(title) > 50:
            title = title[:47] + "..."
        console.print(
            f"  [{style}]{status}[/{style}]  {num:2d}. {first_author_surname(source)} "
            f"({source_year(source)}) {title}"
        )

    if len(pairs) > 10:
        console.print(f"      ... and {len(pairs) - 10} more")

    console.print()
    console.print(f"  Status: {len(cached_ids)}/{len(pairs)} tables already cached (C)")

    console.print()
    console.print("-" * 78)
    console.print()
    console.print("  [bold]Options:[/bold]")
    console.print("    [A] Approve and start filling tables")
    console.print("    [Q] Quit")
    console.print()

    choice = console.input("  Your choice: ").strip().lower()
    return choice if choice in ['a', 'q'] else 'a'


def checkpoint_final_review(result, output_files: dict) -> None:
    """Checkpoint 2: Summarise the run and list the output files."""
    console.print()
    console.print("=" * 78, style="bold blue")
    console.print("  REVIEW COMPLETE", style="bold white")
    console.print("=" * 78, style="bold blue")
    console.print()

    total = len(result.tables)
    failed = sum(1 for t in result.tables.values() if is_placeholder(t))
    cached = len(result.cache_hits)

    console.print(f"  Tables:     {total - failed}/{total} sources ({cached} from cache)")
    if failed > 0:
        console.print(f"  [red]Failed:     {failed}[/red]")
    console.print()

    if result.tables:
        table = Table(box=box.SIMPLE, show_header=True, header_style="bold")
        table.add_column("#", justify="right")
        table.add_column("Source")
        table.add_column("Status")
        for num, (source, _) in enumerate(result.pairs, start=1):
            text = result.tables.get(source.id, "")
            if is_placeholder(text):
                status = "[red]failed[/red]"
            elif source.id in result.cache_hits:
                status = "[green]cached[/green]"
            else:
                status = "filled"
            table.add_row(str(num), f"{first_author_surname(source)} ({source_year(source)})", status)
        console.print(table)

    console.print("-" * 78)
    console.print("  OUTPUT FILES", style="bold")
    console.print("-" * 78)
    console.print()

    for name, path in output_files.items():
        console.print(f"  -> {name}: {path}")
    console.print()


def display_progress(message: str, percentage: int) -> None:
    """Display a simple progress indicator."""
    bar_filled = max(0, min(percentage, 100)) // 5  # 20 chars = 100%
    bar_empty = 20 - bar_filled
    bar = "#" * bar_filled + "-" * bar_empty

    console.print(f"  [{bar}] {percentage:3d}% | {message}")
