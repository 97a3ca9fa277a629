"""Entry point for ``python -m file_update_monitor``."""

import sys

from .cli import main

if __name__ == "__main__":
    sys.exit(main())
