import logging


def setup_logger(level="INFO"):
    logger = logging.getLogger()
    logger.propagate = False

    # root logger is a singleton: clear handlers so repeated setup never duplicates output
    logger.handlers.clear()
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    logger.setLevel(level)
    formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    return logger
