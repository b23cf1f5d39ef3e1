import base64
import binascii
import logging
import os
import stat
from typing import Iterable, Optional, Tuple

log = logging.getLogger(__name__)

TEXT_SUFFIX = '.base64'


def to_text(data: bytes) -> str:
    """Base64 text view of a binary artifact."""
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise TypeError("data must be bytes")
    return base64.b64encode(bytes(data)).decode('ascii')


def from_text(text: str) -> bytes:
    """Inverse of to_text. Surrounding whitespace and line breaks are ignored."""
    try:
        if isinstance(text, (bytes, bytearray)):
            text = bytes(text).decode('ascii')
        cleaned = ''.join(text.split())
        return base64.b64decode(cleaned, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError("Text artifact is not valid Base64.") from e


def write_together(outputs: Iterable[Tuple[str, bytes]], *, private: bool = False) -> None:
    """Write every (path, data) pair to a temp file, then move them into place in order.

    If any step fails, files already moved into place are removed again, so
    either all outputs exist or none do. Put the file that marks the set as
    complete last. With private=True the files are owner read/write only.
    """
    outputs = list(outputs)
    mode = stat.S_IRUSR | stat.S_IWUSR if private else 0o666
    written = []
    placed = []
    try:
        for path, data in outputs:
            tmp_path = f"{path}.tmp"
            fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
            written.append(tmp_path)
            with os.fdopen(fd, 'wb') as f_out:
                f_out.write(data)
        for path, _ in outputs:
            os.replace(f"{path}.tmp", path)
            placed.append(path)
    except BaseException:
        for path in placed:
            os.remove(path)
        raise
    finally:
        for tmp_path in written:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)


def write_text_artifact(data: bytes, output_path: str, *, logger: Optional[logging.Logger] = None) -> str:
    logger = logger or log
    if os.path.exists(output_path):
        raise FileExistsError(f"Output file '{output_path}' already exists")
    text = to_text(data)
    write_together([(output_path, text.encode('ascii'))])
    logger.debug("Wrote text artifact '%s' (%d bytes -> %d chars)", output_path, len(data), len(text))
    return output_path


def read_text_artifact(input_path: str) -> bytes:
    with open(input_path, 'r', encoding='ascii') as f_in:
        return from_text(f_in.read())


def read_artifact(input_path: str) -> bytes:
    """Read an artifact in either form: Base64 text when the name ends in '.base64', raw bytes otherwise."""
    if input_path.endswith(TEXT_SUFFIX):
        return read_text_artifact(input_path)
    with open(input_path, 'rb') as f_in:
        return f_in.read()
