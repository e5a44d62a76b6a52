"""Shared logging configuration for terminalbn.

Call ``configure_logging()`` once at an entry point. The call is idempotent:
if the root logger already has handlers it does nothing.
"""
import logging


def configure_logging(level: int = logging.INFO) -> None:
    root = logging.getLogger()
    if root.handlers:
        return

    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    console = logging.StreamHandler()
    console.setFormatter(formatter)
    root.addHandler(console)
    root.setLevel(level)
