"""Run the robust Student-t regression from a checkout without installing it."""
import sys

from robust_t_regression.cli import main

if __name__ == "__main__":
    sys.exit(main())
