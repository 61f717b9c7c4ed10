"""Root logger setup for the pwvault CLI; ``-v`` switches WARNING to INFO."""

import logging
import sys


def configure_logging(level: int = logging.WARNING) -> None:
    # Log to stderr: stdout carries listings and may be piped.
    logging.basicConfig(
        level=level,
        format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )
