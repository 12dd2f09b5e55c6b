#!/usr/bin/env python3
"""Entry point for the gatedag CLI when run as python -m gatedag.cli."""

if __name__ == "__main__":
    from gatedag.cli.main import main

    main()
