import base64
import binascii
import importlib.util
import inspect
import types
from typing import Literal, TypeAlias, Union

from pad_prober.errors import PluginLoadError, PluginSignatureError
from pad_prober.oracle import SubmitGuessFn

PLUGIN_FUNC_NAME = "submit_guess"

CiphertextFormat: TypeAlias = Union[Literal[
    "b64",
    "b64_urlsafe",
    "hex",
    "raw"
], str]

CIPHERTEXT_FORMATS = ("b64", "b64_urlsafe", "hex", "raw")


def load_module_from_file(module_file_path: str) -> types.ModuleType:
    """Load a Python module file."""
    spec = importlib.util.spec_from_file_location("oracle_plugin", module_file_path)
    if spec is None or spec.loader is None:
        raise PluginLoadError(f"Could not load spec for: {module_file_path}")
    mod = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(mod)  # executes user code
    return mod


def load_guess_fn(module_file_path: str) -> SubmitGuessFn:
    """Load the user defined oracle function from a Python module file."""
    mod = load_module_from_file(module_file_path)
    fn = getattr(mod, PLUGIN_FUNC_NAME, None)
    if fn is None:
        raise PluginLoadError(
            f"Plugin must define `{PLUGIN_FUNC_NAME}(prev_block: bytes, target_block: bytes) -> bool`"
        )

    sig = inspect.signature(fn)
    params = list(sig.parameters.values())
    if len(params) != 2 or any(
        p.kind not in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
        for p in params
    ):
        raise PluginSignatureError(
            "submit_guess must accept exactly two positional args: (prev_block: bytes, target_block: bytes)"
        )
    return fn


def decode_ciphertext(data: Union[str, bytes], format: CiphertextFormat) -> bytes:
    """Decode ciphertext text in the given wire format."""
    if format == "raw":
        return _as_bytes(data)
    text = _as_bytes(data).decode("ascii").strip()
    if format == "b64":
        return b64_decode(text)
    elif format == "b64_urlsafe":
        return b64_decode(text, urlsafe=True)
    elif format == "hex":
        return bytes.fromhex(text)
    else:
        raise ValueError(f"Invalid ciphertext format: {format}")


def load_ciphertext(file_path: str, format: CiphertextFormat) -> bytes:
    """Load the ciphertext from a file."""
    with open(file_path, "rb") as f:
        data = f.read()
    return decode_ciphertext(data, format)


def _as_bytes(
    data: Union[str, bytes, bytearray, memoryview],
    *,
    encoding: str = "utf-8",
) -> bytes:
    """Normalize values to type bytes."""
    if isinstance(data, bytes):
        return data
    if isinstance(data, (bytearray, memoryview)):
        return bytes(data)
    if isinstance(data, str):
        return data.encode(encoding)
    raise TypeError(f"Expected str or bytes-like, got {type(data).__name__}")


def strip_plaintext_padding(plaintext: bytes, block_size: int = 16) -> bytes:
    """Strip PKCS#7 padding. Plaintext without valid padding is returned as is."""
    if not plaintext:
        return plaintext

    pad = plaintext[-1]
    if 1 <= pad <= block_size and plaintext[-pad:] == bytes([pad]) * pad:
        return plaintext[:-pad]

    return plaintext


def b64_encode(
    data: Union[str, bytes, bytearray, memoryview],
    *,
    urlsafe: bool = False,
    text_encoding: str = "utf-8",
) -> str:
    """Accepts str/bytes/etc and return a base64 string (standard or URL-safe)."""
    raw = _as_bytes(data, encoding=text_encoding)
    fn = base64.urlsafe_b64encode if urlsafe else base64.b64encode
    return fn(raw).decode("ascii")


def b64_decode(
    b64_text: Union[str, bytes],
    *,
    urlsafe: bool = False,
    return_str: bool = False,
    text_encoding: str = "utf-8",
) -> Union[bytes, str]:
    """Decodes either standard or URL-safe b64. Tolerates missing '=' padding."""
    if isinstance(b64_text, bytes):
        b64_text = b64_text.decode("ascii")
    b64_text = b64_text.strip()

    missing = len(b64_text) % 4
    if missing:
        b64_text += "=" * (4 - missing)

    if urlsafe:
        out = base64.urlsafe_b64decode(b64_text)
    else:
        try:
            out = base64.b64decode(b64_text, validate=True)
        except binascii.Error:
            out = base64.urlsafe_b64decode(b64_text)  # URL-safe fallback

    if return_str:
        return out.decode(text_encoding)
    return out
