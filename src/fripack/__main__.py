import sys

from fripack.cli import main

if __name__ == "__main__":
    sys.exit(main())
