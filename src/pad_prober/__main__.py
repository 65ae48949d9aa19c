"""Main entry point for the pad_prober package."""
from pad_prober.cli import main


if __name__ == "__main__":
    main()
