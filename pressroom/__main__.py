"""Entry point for the Pressroom CLI.

Allows running the builder as ``python -m pressroom``.
"""

from .cli import main

if __name__ == "__main__":  # pragma: no cover
    main()
