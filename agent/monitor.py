"""
App Usage Intervention Monitor
==============================
Watches which app is in the foreground, shows a delay overlay before
designated distraction apps, and reports usage telemetry (sessions, taps,
interventions, device status, daily totals) to the research collector.

Usage:
    python monitor.py [run|health|send-test|status|clear-queue|set-server]
"""

import sys

from monitor_core.runner import main

if __name__ == "__main__":
    sys.exit(main())
