#!/usr/bin/env python3
"""
SongScout HTTP Server Runner
"""

import sys

from songscout.interfaces.cli import CLI


def main():
    """Run the HTTP server with settings from the environment."""
    sys.exit(CLI().run(['serve'] + sys.argv[1:]))


if __name__ == '__main__':
    main()
