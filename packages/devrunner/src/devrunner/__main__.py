"""Allow `python -m devrunner`."""

from devrunner.cli.main import main

main()
