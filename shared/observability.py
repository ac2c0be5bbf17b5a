import os
import logging
from opencensus.ext.azure.log_exporter import AzureLogHandler

_logger = logging.getLogger("brand_assistant.events")
_conn = os.getenv("APPLICATIONINSIGHTS_CONNECTION_STRING") or os.getenv(
    "APPINSIGHTS_CONN"
)
if _conn:
    _logger.addHandler(AzureLogHandler(connection_string=_conn))
    _logger.setLevel(logging.INFO)


def log_event(event: str, **props):
    """Send a business event to Application Insights (no-op without a connection string)."""
    if _conn:
        _logger.info(event, extra={"custom_dimensions": props})
    else:
        logging.getLogger(__name__).debug(f"[Observability] {event} {props}")
