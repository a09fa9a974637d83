"""Package entry point for ``python -m readalong_sync``.

Delegates to the CLI's main() function.
"""

from readalong_sync.cli import main

if __name__ == "__main__":
    main()
