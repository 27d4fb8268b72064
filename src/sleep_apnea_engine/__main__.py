"""Allow ``python -m sleep_apnea_engine``."""

from .cli import main

main()
