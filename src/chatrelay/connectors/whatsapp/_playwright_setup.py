"""
This file is used to ensure that the Chromium runtime is installed for Playwright.
"""
import sys
import subprocess

from playwright.sync_api import sync_playwright
from playwright.sync_api import Error as PlaywrightError

from chatrelay.utils.logs import report

logger = report.settings(__file__)


def ensure_chromium_installed(executable_path: str = "") -> None:
    """
    Ensure that a Chromium runtime is available for Playwright.

    Skipped when an explicit Chrome executable is configured.
    """
    if executable_path:
        return
    try:
        with sync_playwright() as p:
            browser = p.chromium.launch(headless=True)
            browser.close()

    except PlaywrightError:
        print("🔄 Installing Playwright Chromium runtime:")
        logger.info("Chromium runtime missing, installing")
        subprocess.run(
            [sys.executable, "-m", "playwright", "install", "chromium"],
            check=True
        )
