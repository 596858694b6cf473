# cine_pipeline/logconf.py
import logging
import sys


def init(level: str = "INFO"):
    """Configure root logger once per run."""
    fmt = "%(asctime)s | %(levelname)-5s | %(module)s | %(message)s"
    logging.basicConfig(
        level=getattr(logging, level.upper(), 20),
        format=fmt,
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )
