"""
QR codes for the entrance and exit gates.

Payloads are JSON: the entrance code carries whatever the client booked with,
the exit code carries only ``{"entranceId": ...}``. Images travel over HTTP
as base64 PNG data URLs.
"""
import base64
import binascii
import json
from typing import Any, Optional

import cv2  # type: ignore
import numpy as np
from fastapi import APIRouter, Body
from pydantic import BaseModel, Field

from errors import UpstreamError, ValidationError

MODULE_PIXELS = 8
BORDER_PIXELS = 32
# byte-mode capacity of a version 40 code at the lowest error correction level
MAX_PAYLOAD_BYTES = 2953

router = APIRouter(prefix="/qr", tags=["qr"])


class QRDecodeError(Exception):
    """The bytes are not an image, or the code inside is not JSON."""


def encode(payload: Any) -> bytes:
    """Render ``payload`` as a PNG QR code.

    Raises ``ValidationError`` when the JSON text does not fit in a QR code.
    """
    text = json.dumps(payload, separators=(",", ":"))
    if len(text.encode("utf-8")) > MAX_PAYLOAD_BYTES:
        raise ValidationError("Payload too large for a QR code")
    try:
        matrix = cv2.QRCodeEncoder.create().encode(text)
    except cv2.error as e:
        raise ValidationError(f"Payload cannot be encoded as a QR code: {e}") from e
    if matrix is None or matrix.size == 0:
        raise ValidationError("Payload too large for a QR code")
    # one pixel per module is too small for most scanners
    image = cv2.resize(matrix, None, fx=MODULE_PIXELS, fy=MODULE_PIXELS, interpolation=cv2.INTER_NEAREST)
    image = cv2.copyMakeBorder(image, BORDER_PIXELS, BORDER_PIXELS, BORDER_PIXELS, BORDER_PIXELS,
                               cv2.BORDER_CONSTANT, value=255)
    ok, buffer = cv2.imencode(".png", image)
    if not ok:
        raise RuntimeError("Unable to encode QR image")
    return buffer.tobytes()


def encode_exit(entrance_id: str) -> bytes:
    return encode({"entranceId": entrance_id})


def decode(data: bytes) -> Optional[Any]:
    """Return the JSON payload of the first QR code in the image, or None."""
    if not data:
        raise QRDecodeError("Empty image")
    image = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_GRAYSCALE)
    if image is None:
        raise QRDecodeError("Unable to read image")

    try:
        text, _, _ = cv2.QRCodeDetector().detectAndDecode(image)
    except cv2.error as e:
        raise QRDecodeError(f"Unable to scan image: {e}") from e
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError as e:
        raise QRDecodeError(f"QR code does not contain JSON: {e}") from e


def to_data_url(png: bytes) -> str:
    return "data:image/png;base64," + base64.b64encode(png).decode("utf-8")


def from_data_url(value: str) -> bytes:
    if value.startswith("data:"):
        value = value.split(",", 1)[-1]
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("Image is not valid base64")


class ExitRequest(BaseModel):
    entranceId: str = Field(..., min_length=1)


class DecodeRequest(BaseModel):
    image: str = Field(..., min_length=1, description="Base64 image or data URL")


@router.post("/entrance")
def entrance_qr(payload: Any = Body(...)):
    return {"qr": to_data_url(encode(payload))}


@router.post("/exit")
def exit_qr(req: ExitRequest):
    return {"qr": to_data_url(encode_exit(req.entranceId))}


@router.post("/decode")
def decode_qr(req: DecodeRequest):
    try:
        return {"data": decode(from_data_url(req.image))}
    except QRDecodeError as e:
        raise UpstreamError(str(e))
