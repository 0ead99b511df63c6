"""Allow ``python -m skillpath``."""

from skillpath.cli.main import run

if __name__ == "__main__":
    run()
