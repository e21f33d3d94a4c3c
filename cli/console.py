"""
Shared rich console for the shoeimg CLI.
"""

from rich.console import Console
from rich.theme import Theme

THEME = Theme({
    "info":         "cyan",
    "success":      "bold green",
    "warning":      "bold yellow",
    "error":        "bold red",
    "muted":        "dim white",
    "table_header": "bold white on blue",
    "source":       "bold cyan",
    "number":       "bold magenta",
    "query":        "italic yellow",
    "border_ok":    "bold green",
    "border_bad":   "bold red",
    "stat_key":     "bold white",
    "stat_val":     "cyan",
})

console = Console(theme=THEME)
