#!/usr/bin/env python3
"""Run the Slack slash-command server."""
from chatrelay.connectors.slack.server import main

if __name__ == "__main__":
    main()
