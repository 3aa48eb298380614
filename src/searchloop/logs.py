import logging


def configure_logging(
        level: int = logging.INFO,
        log_file: str | None = "searchloop.log",
) -> None:
    """Send searchloop logs to stderr and, optionally, to *log_file*.

    Applications call this once at startup. Importing the library never
    touches logging configuration.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=level,
        format='%(asctime)s:%(name)s:%(levelname)s:%(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        handlers=handlers,
    )
