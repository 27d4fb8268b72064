#!/usr/bin/env python3
"""Example: Analyze audio without microphone capture.

This example shows how to feed audio data directly to the engine,
useful for:
- Processing recordings
- Custom audio sources
- Testing and simulation
"""

from sleep_apnea_engine import AudioSettings, analyze_samples
from sleep_apnea_engine.simulator import synthesize_breathing


def main():
    sample_rate = 16000
    audio = AudioSettings(sample_rate=sample_rate, fft_size=8192)

    print("Generating two minutes of synthetic breathing with two pauses...")
    signal = synthesize_breathing(
        120.0,
        sample_rate,
        rate_hz=0.25,
        apnea_spans=[(30.0, 48.0), (80.0, 95.0)],
        seed=1,
    )

    print(f"Total audio length: {len(signal) / sample_rate:.2f}s")
    print("Processing...")

    analysis = analyze_samples(signal, sample_rate, audio=audio, tick_seconds=0.5, sensitivity=6)

    print(f"\nTicks analyzed:  {analysis.ticks}")
    print(f"Apnea episodes:  {analysis.apnea_event_count}")
    print(f"Max confidence:  {analysis.max_confidence:.2f}")
    print(f"Severity:        {analysis.severity.value}")

    for event in analysis.timeline:
        if event.is_apnea:
            print(f"  t={event.timestamp:6.1f}s  {event}")


if __name__ == "__main__":
    main()
