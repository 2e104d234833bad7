"""Browser automation: login detection, popup clearing, scroll loading and the driver.

``scripts.py`` holds the in-page JavaScript the other modules evaluate;
``driver.py`` ties them together into the scrape state machine.
"""

from karaoke_scout.services.browser.driver import BrowserAutomationDriver
from karaoke_scout.services.browser.login_detector import LoginDetector
from karaoke_scout.services.browser.popup_handler import PopupHandler
from karaoke_scout.services.browser.scroll_loader import PlateauScrollLoader

__all__ = [
    "BrowserAutomationDriver",
    "LoginDetector",
    "PlateauScrollLoader",
    "PopupHandler",
]
