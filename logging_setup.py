import logging


def setup_logging(level: str = "INFO") -> None:
    """Configure root logging once, before the app starts serving."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        force=True,
    )
    # passlib probes bcrypt's version attribute and warns about it on newer releases
    logging.getLogger("passlib").setLevel(logging.ERROR)
