"""
Console and formatting helpers shared by the CLI and the pipeline.

All user-facing output is routed through one Rich console.
"""

from rich.console import Console

console = Console(force_terminal=True, markup=True)
print = console.print  # route prints through Rich


def format_bytes(size: int) -> str:
    """
    Render a byte count for humans.

    Args:
        size: Size in bytes

    Returns:
        "512 B", "1.50 KB" or "2.00 MB"
    """
    if size < 1024:
        return f"{size} B"
    kb = size / 1024
    if kb < 1024:
        return f"{kb:.2f} KB"
    return f"{kb / 1024:.2f} MB"


def format_percent(value: float) -> str:
    """Signed percentage with one decimal, e.g. "+5.2%"."""
    return f"{value:+.1f}%"


def format_duration(seconds: float) -> str:
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    return f"{seconds:.1f}s"
