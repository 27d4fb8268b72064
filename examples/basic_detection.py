#!/usr/bin/env python3
"""Example: Basic breathing monitoring.

This example shows how to use the Sleep Apnea Engine to monitor
breathing from microphone input.
"""

import logging
import time

from sleep_apnea_engine import Detector, DetectionEvent, DeviceUnavailableError

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s | %(levelname)-8s | %(message)s", datefmt="%H:%M:%S"
)


def on_event(event: DetectionEvent):
    """Callback for every analysis pass."""
    if event.is_apnea:
        print(f"\n🚨 BREATHING PAUSE: confidence {event.confidence:.2f}, {event.duration:.1f}s\n")
        # Here you could:
        # - Send a notification
        # - Wake the sleeper
        # - Log to a file
    elif event.pattern == "interrupted":
        print(f"⚠️  Irregular breathing ({event.confidence:.2f})")


def main():
    detector = Detector(sensitivity=7)

    print("🎤 Starting audio capture...")
    print("   Press Ctrl+C to stop\n")

    try:
        detector.start()
    except DeviceUnavailableError as e:
        print(f"Could not open the microphone: {e}")
        return

    detector.subscribe(on_event, interval_ms=1000)
    try:
        while detector.is_listening:
            time.sleep(0.5)
    except KeyboardInterrupt:
        print("\n👋 Stopping...")
    finally:
        detector.stop()


if __name__ == "__main__":
    main()
