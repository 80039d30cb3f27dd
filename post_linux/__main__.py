"""Allow ``python3 -m post_linux``."""

from post_linux.cli import main

if __name__ == "__main__":
    main()
