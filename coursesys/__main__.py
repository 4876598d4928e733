"""
Package entry point.

Allows running the application via:

    python -m coursesys

This simply forwards execution to coursesys.cli.main().
"""

from coursesys.cli import main

if __name__ == "__main__":
    main()
