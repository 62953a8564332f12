"""Allow running as ``python -m sellerhook``."""

from sellerhook.cli import main

main()
