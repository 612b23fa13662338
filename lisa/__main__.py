"""Allow running lisa as ``python -m lisa``."""

from lisa.cli import main

if __name__ == "__main__":
    main()
