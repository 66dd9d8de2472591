"""
Style-Bert-VITS2 text-to-speech relay.

The browser posts each line it wants spoken to /api/tts; this module forwards
the request to the configured synthesis server and hands back WAV bytes.
Two upstream flavours are supported:
- a plain Style-Bert-VITS2 API server (GET /voice with query parameters)
- a RunPod serverless endpoint (POST JSON, base64 audio in output.voice)
"""

from __future__ import annotations

import base64
import binascii
import logging
import ssl
from typing import Any, Dict, Optional

import certifi
import httpx

from .config import TTSSettings
from .schemas import TTSRequest

logger = logging.getLogger(__name__)

RUNPOD_HOST = "https://api.runpod.ai"


class TTSError(RuntimeError):
    def __init__(self, message: str, status_code: int = 500) -> None:
        super().__init__(message)
        self.status_code = status_code


def _query_params(request: TTSRequest) -> Dict[str, str]:
    params: Dict[str, str] = {"text": request.message}
    optional = {
        "model_id": request.model_id,
        "speaker_id": request.speaker_id,
        "sdp_ratio": request.sdp_ratio,
        "noise": request.noise,
        "noisew": request.noise_w,
        "length": request.length,
        "auto_split": request.auto_split,
        "split_interval": request.split_interval,
        "assist_text_weight": request.assist_text_weight,
        "style": request.style,
        "style_weight": request.style_weight,
    }
    for key, value in optional.items():
        if value is None:
            continue
        params[key] = str(value).lower() if isinstance(value, bool) else str(value)
    params["language"] = request.language_code
    return params


def _runpod_payload(request: TTSRequest) -> Dict[str, Any]:
    fields = {
        "action": "/voice",
        "model_id": request.model_id,
        "speaker_id": request.speaker_id,
        "text": request.message,
        "style": request.style,
        "sdp_ratio": request.sdp_ratio,
        "noise": request.noise,
        "noisew": request.noise_w,
        "length": request.length,
        "language": request.language_code,
        "auto_split": request.auto_split,
        "split_interval": request.split_interval,
        "assist_text_weight": request.assist_text_weight,
        "style_weight": request.style_weight,
    }
    return {"input": {key: value for key, value in fields.items() if value is not None}}


class StyleBertVits2Relay:
    """Forwards synthesis requests to a Style-Bert-VITS2 server."""

    def __init__(
        self,
        settings: Optional[TTSSettings] = None,
        *,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.settings = settings or TTSSettings()
        # certifi's CA bundle keeps verification working on hosts with stale stores
        self.ssl_context = ssl.create_default_context(cafile=certifi.where())
        self._timeout = httpx.Timeout(timeout)
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        if self._transport is not None:
            return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        return httpx.AsyncClient(timeout=self._timeout, verify=self.ssl_context)

    async def synthesize(self, request: TTSRequest) -> bytes:
        """
        Return WAV audio for ``request``.

        Raises:
            TTSError: no server configured, upstream error status, or a RunPod
                reply without decodable audio
        """
        server_url = request.server_url or self.settings.server_url
        if not server_url:
            raise TTSError("STYLEBERTVITS2_SERVER_URL is not configured.")
        base_url = server_url.rstrip("/")
        headers = dict(self.settings.access_headers())

        try:
            async with self._client() as client:
                if RUNPOD_HOST in server_url:
                    api_key = request.api_key or self.settings.api_key
                    if api_key:
                        headers["Authorization"] = f"Bearer {api_key}"
                    response = await client.post(base_url, json=_runpod_payload(request), headers=headers)
                else:
                    headers["Content-Type"] = "audio/wav"
                    response = await client.get(
                        f"{base_url}/voice", params=_query_params(request), headers=headers
                    )
        except httpx.HTTPError as exc:
            logger.error("TTS request to %s failed: %s", base_url, exc, exc_info=True)
            raise TTSError("Internal error while processing the TTS request.") from exc

        if response.status_code >= 400:
            logger.error("TTS server error %s: %s", response.status_code, response.text[:200])
            raise TTSError(f"TTS server returned an error ({response.status_code}).")

        if RUNPOD_HOST not in server_url:
            return response.content

        try:
            voice = response.json()["output"]["voice"]
            return base64.b64decode(voice)
        except (ValueError, KeyError, TypeError, binascii.Error) as exc:
            logger.error("RunPod TTS response has no output.voice: %s", exc)
            raise TTSError("Malformed response from RunPod TTS.") from exc


__all__ = ["StyleBertVits2Relay", "TTSError"]
