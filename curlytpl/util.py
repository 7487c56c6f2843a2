import hashlib
import re
import structlog

log = structlog.get_logger(__name__)
utf8_bom = b"\xef\xbb\xbf"

def strip_utf8_bom(data: bytes) -> bytes:
    # removes the utf-8 byte order mark from byte data if present.
    if data.startswith(utf8_bom):
        return data[len(utf8_bom):]
    return data

def short_hash(text: str, length: int = 10) -> str:
    # stable, process-independent digest used to namespace generated names.
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:length]

def python_identifier(name: str) -> str:
    # maps a directive name (which may contain hyphens) onto a python identifier.
    ident = re.sub(r"\W", "_", name)
    return ident if not ident[:1].isdigit() else f"_{ident}"

def parse_key_value_pairs(pairs) -> dict:
    # turns ("k=v", ...) into a dict, ignoring entries without '='.
    return {k.strip(): v for k, v in (s.split("=", 1) for s in pairs if "=" in s)}
