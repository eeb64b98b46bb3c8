"""Allow ``python -m src.cli`` execution."""

from src.cli.corpus import main

main()
