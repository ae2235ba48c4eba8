"""Entry point for ``python -m regulon_inference``."""

from .cli import main

if __name__ == "__main__":
    main()
