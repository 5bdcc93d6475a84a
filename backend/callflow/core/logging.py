import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    # Twilio's client logs full request bodies at INFO.
    logging.getLogger("twilio.http_client").setLevel(logging.WARNING)
