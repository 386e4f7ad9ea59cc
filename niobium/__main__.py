"""
Run a deployment with ``python -m niobium``.
"""

from niobium.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
