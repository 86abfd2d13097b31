"""connectlab CLI entry point.

This module enables running connectlab as:
    python -m connectlab <command>
"""

from connectlab.cli import main

if __name__ == "__main__":
    main()
