#!/usr/bin/env python3
"""Run the WhatsApp -> Slack relay (weekly schedule, --test, --date or --login)."""
from chatrelay.jobs.relay import run_main

if __name__ == "__main__":
    run_main()
