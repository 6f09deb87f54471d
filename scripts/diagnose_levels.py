import argparse
import os
import sys
import time

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "src"))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from voicepulse.config import load_config_or_default
from voicepulse.engine import ActivityEngine
from voicepulse.recorder import Microphone, find_input_device


def _describe_device(info: dict) -> None:
    print(f"Input device: {info.get('name', '')}")
    print(f"Index: {info.get('index', '')}")
    print(f"Host API: {info.get('hostapi', '')}")
    print(f"Max input channels: {info.get('max_input_channels', 0)}")
    print(f"Default sample rate: {info.get('default_samplerate', '')}")


def main() -> int:
    parser = argparse.ArgumentParser()
    parser.add_argument("--device", help="Device name substring.")
    parser.add_argument("--seconds", type=float, default=6.0, help="Test duration.")
    parser.add_argument("--config", default="voicepulse_config.yml", help="Config.")
    args = parser.parse_args()

    config = load_config_or_default(args.config)
    if args.device:
        config.audio.device_name = args.device
    _describe_device(find_input_device(config.audio.device_name))

    engine = ActivityEngine(config)
    mic = Microphone(
        sample_rate_hz=config.audio.sample_rate_hz,
        channels=config.audio.channels,
        block_size=config.audio.block_size,
        device_name=config.audio.device_name,
        on_block=engine.feed_block,
    )
    mic.open()
    print("Streaming... press Ctrl+C to stop early.")

    end = time.time() + args.seconds
    try:
        while time.time() < end:
            time.sleep(engine.tick_seconds)
            vector = engine.tick()
            state = engine.state
            print(
                f"loud {state.loudness_smoothed:.4f} | floor {state.noise_floor:.4f} | "
                f"{'ACTIVE' if engine.last_active else 'quiet '} | "
                f"cont {state.continuity_seconds:4.1f}s | "
                f"energy {vector[0]:.2f} stability {vector[7]:.2f}"
            )
    except KeyboardInterrupt:
        pass
    finally:
        mic.close()

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
