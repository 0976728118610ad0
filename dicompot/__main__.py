"""CLI interface for dicompot"""

import sys

from dicompot.server import main


if __name__ == "__main__":
    main(sys.argv[1:])
