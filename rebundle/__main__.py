"""
Entry point for running rebundle as a module: python -m rebundle
"""

import sys
from .cli import main

if __name__ == "__main__":
    sys.exit(main())
