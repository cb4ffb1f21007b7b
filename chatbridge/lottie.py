"""Conversion of Telegram animated stickers through lottie_convert.py."""

from __future__ import annotations

import logging
import os
import subprocess
import tempfile

logger = logging.getLogger("chatbridge.lottie")

_COMMAND = "lottie_convert.py"
_SUPPORTED_FORMATS = frozenset({"png", "webp"})


class LottieError(RuntimeError):
    """The external converter is missing or failed."""


def can_convert_tgs() -> None:
    """Raise LottieError unless the external converter can be run."""
    try:
        subprocess.run(
            [_COMMAND, "--help"],
            check=True,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
    except (OSError, subprocess.CalledProcessError) as exc:
        raise LottieError(f"{_COMMAND} is not usable: {exc}") from exc


def _remove(path: str, kind: str) -> None:
    try:
        os.remove(path)
    except OSError as exc:
        logger.error("Could not delete temporary (%s) file %s: %s", kind, path, exc)


def convert_tgs(data: bytes, output_format: str) -> bytes:
    """Convert tgs sticker data to output_format and return the result."""
    # The converter reads only from files and writes only to files.
    with tempfile.NamedTemporaryFile(
        prefix="chatbridge-lottie-input-", suffix=".tgs", delete=False
    ) as in_file:
        in_name = in_file.name
        in_file.write(data)
    try:
        with tempfile.NamedTemporaryFile(
            prefix="chatbridge-lottie-output-", suffix=".data", delete=False
        ) as out_file:
            out_name = out_file.name
        try:
            try:
                result = subprocess.run(
                    [
                        _COMMAND,
                        "--input-format",
                        "lottie",
                        "--output-format",
                        output_format,
                        in_name,
                        out_name,
                    ],
                    capture_output=True,
                )
            except OSError as exc:
                raise LottieError(f"cannot run {_COMMAND}: {exc}") from exc
            if result.returncode != 0:
                stderr = result.stderr.decode("utf-8", "replace").strip()
                raise LottieError(
                    f"{_COMMAND} exited with status {result.returncode}: {stderr}"
                )
            with open(out_name, "rb") as converted:
                return converted.read()
        finally:
            _remove(out_name, "output")
    finally:
        _remove(in_name, "input")


def supports_format(output_format: str) -> bool:
    return output_format in _SUPPORTED_FORMATS


def lottie_backend() -> str:
    return _COMMAND