"""Record one utterance from the microphone and print its transcription."""

from __future__ import annotations

import argparse
import logging
import sys
import threading

from voxgate.audio import CaptureController, SoundDeviceSource
from voxgate.config import get_settings
from voxgate.metrics import render_latest
from voxgate.services import DictationWorker, TranscriptionClient, TranscriptionError


def main() -> int:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Capture a single voice-gated recording and transcribe it.")
    parser.add_argument("--api-url", default=settings.api_url, help="Transcription service base URL.")
    parser.add_argument("--device", default=settings.input_device, help="Input device name or index.")
    parser.add_argument(
        "--use-server-config",
        action="store_true",
        help="Load capture thresholds from GET /speech/config before recording.",
    )
    parser.add_argument("--metrics", action="store_true", help="Dump Prometheus metrics on exit.")
    args = parser.parse_args()

    logging.basicConfig(level=settings.log_level.upper(), format="%(asctime)s %(name)s %(levelname)s %(message)s")

    client = TranscriptionClient(args.api_url, timeout=settings.request_timeout)
    capture = settings.capture
    if args.use_server_config:
        try:
            capture = client.fetch_speech_config().to_capture_config(capture)
        except TranscriptionError as exc:
            logging.getLogger("voxgate").warning("Using local capture config: %s", exc)

    done = threading.Event()
    result: dict[str, str] = {}

    def on_final(text: str) -> None:
        result["text"] = text
        done.set()

    def on_error(message: str) -> None:
        result["error"] = message
        done.set()

    worker = DictationWorker(
        client,
        on_partial=lambda text: print(f"... {text}", file=sys.stderr),
        on_final=on_final,
        on_error=on_error,
    )
    controller = CaptureController(
        SoundDeviceSource(settings.sample_rate, settings.channels, args.device),
        on_error=on_error,
    )
    worker.attach(controller)
    worker.start()
    try:
        print("Listening...", file=sys.stderr)
        if controller.start(capture):
            done.wait()
    except KeyboardInterrupt:
        controller.stop()
        done.wait(timeout=settings.request_timeout)
    finally:
        controller.close()
        worker.stop()
        client.close()

    if args.metrics:
        print(render_latest()[0].decode("utf-8"), file=sys.stderr)
    if "error" in result:
        print(result["error"], file=sys.stderr)
        return 1
    print(result.get("text", ""))
    return 0


if __name__ == "__main__":
    sys.exit(main())
