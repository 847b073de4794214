"""Allow ``python -m barcode_agent`` to launch the agent."""

from __future__ import annotations

import sys


def main() -> None:
    from barcode_agent import run
    sys.exit(run(sys.argv[1:]))


if __name__ == "__main__":
    main()
