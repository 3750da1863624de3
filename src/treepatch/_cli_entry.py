"""Console-script entry point.

click is only installed with the ``cli`` extra; without it the command
exits with an install hint instead of a traceback.
"""

import sys

_MISSING_CLICK = (
    "treepatch: the command line needs click, which comes with the 'cli' extra.\n"
    "Install it with: pip install 'treepatch[cli]'"
)


def main():
    try:
        from .cli import main as cli_main
    except ModuleNotFoundError as exc:
        if exc.name != "click":
            raise
        sys.exit(_MISSING_CLICK)
    cli_main(prog_name="treepatch")
