"""Main entry point when executing quotaguard as a package.

This allows running the package using python -m quotaguard.
"""

from quotaguard.main import cli_entry_point

if __name__ == "__main__":
    cli_entry_point()
