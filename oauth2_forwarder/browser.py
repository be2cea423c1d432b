import logging
import webbrowser


logger = logging.getLogger(__name__)


def open_browser(url: str) -> None:
    """Open a URL in the default browser. Failures are logged, never raised."""
    try:
        if not webbrowser.open(url):
            logger.warning(f"Could not open browser. Please visit this URL:\n{url}")
    except webbrowser.Error as e:
        logger.warning(f"Could not open browser ({e}). Please visit this URL:\n{url}")
