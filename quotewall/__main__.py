"""
__main__.py

Support running quotewall as a python module (python -m quotewall) instead of through the
"quotewall" command line entrypoint.
"""

from quotewall.cli import main

if __name__ == "__main__":
    main()
