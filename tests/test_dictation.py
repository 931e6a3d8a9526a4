import io
import threading

import httpx
import numpy as np
import soundfile as sf

from voxgate.audio.types import Blob, pcm_mime_type
from voxgate.config import CaptureConfig
from voxgate.services.dictation import DictationWorker
from voxgate.services.transcription import MODE_HEADER, TranscriptionClient


def _blob(size: int = 32) -> Blob:
    return Blob(data=np.zeros(size, dtype="<i2").tobytes(), mime_type=pcm_mime_type(16000), chunk_count=1)


def _client(handler) -> TranscriptionClient:
    return TranscriptionClient("https://stt.local", client=httpx.Client(transport=httpx.MockTransport(handler)))


def test_final_blob_is_transcribed_in_default_mode():
    modes = []

    def handler(request):
        modes.append(request.headers[MODE_HEADER])
        return httpx.Response(200, json={"text": "turn on the lights"})

    finals = []
    done = threading.Event()

    def on_final(text):
        finals.append(text)
        done.set()

    worker = DictationWorker(_client(handler), on_final=on_final)
    worker.start()
    try:
        worker.submit_final(_blob())
        assert done.wait(timeout=3)
    finally:
        worker.stop()
    assert finals == ["turn on the lights"]
    assert modes == ["default"]


def test_no_speech_final_reports_empty_text_without_request():
    def handler(request):
        raise AssertionError("Unexpected request")

    finals = []
    worker = DictationWorker(_client(handler), on_final=finals.append)
    worker.start()
    try:
        worker.submit_final(None)
        assert worker.wait_idle(timeout=3)
    finally:
        worker.stop()
    assert finals == [""]


def test_partial_uses_speculative_mode_and_latest_snapshot():
    bodies = []

    def handler(request):
        samples, _ = sf.read(io.BytesIO(request.content), dtype="int16")
        bodies.append((request.headers[MODE_HEADER], len(samples)))
        return httpx.Response(200, json={"text": "partial"})

    partials = []
    worker = DictationWorker(_client(handler), on_partial=partials.append)
    worker.submit_partial(_blob(16))
    worker.submit_partial(_blob(64))
    worker.start()
    try:
        assert worker.wait_idle(timeout=3)
    finally:
        worker.stop()
    assert partials == ["partial"]
    assert len(bodies) == 1
    mode, size = bodies[0]
    assert mode == "speculative"
    assert size == 64


def test_failed_final_reports_error():
    def handler(request):
        return httpx.Response(502, json={"detail": "upstream down"})

    errors = []
    worker = DictationWorker(_client(handler), on_error=errors.append)
    worker.start()
    try:
        worker.submit_final(_blob())
        assert worker.wait_idle(timeout=3)
    finally:
        worker.stop()
    assert errors == ["upstream down"]


def test_attach_routes_controller_callbacks(make_rig):
    def handler(request):
        return httpx.Response(200, json={"text": "hello"})

    finals = []
    done = threading.Event()

    def on_final(text):
        finals.append(text)
        done.set()

    rig = make_rig()
    worker = DictationWorker(_client(handler), on_final=on_final)
    worker.attach(rig.controller)
    worker.start()
    try:
        rig.controller.start(CaptureConfig(min_duration_ms=200, end_silence_ms=300))
        rig.play(0.3, 400)
        rig.play(0.0, 600)
        assert rig.controller.is_recording is False
        assert done.wait(timeout=3)
    finally:
        worker.stop()
    assert finals == ["hello"]
