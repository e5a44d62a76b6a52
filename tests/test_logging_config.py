import logging

from terminalbn.logging_config import configure_logging


def test_configure_logging_is_idempotent():
    root = logging.getLogger()
    saved = list(root.handlers)
    saved_level = root.level
    for h in saved:
        root.removeHandler(h)
    try:
        configure_logging(logging.DEBUG)
        configure_logging(logging.WARNING)
        assert len(root.handlers) == 1
        assert root.level == logging.DEBUG
    finally:
        for h in list(root.handlers):
            root.removeHandler(h)
        for h in saved:
            root.addHandler(h)
        root.setLevel(saved_level)
