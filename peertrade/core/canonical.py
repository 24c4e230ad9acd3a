"""
Peertrade: Canonical JSON Encoding — RFC 8785 (JCS)

Journal records and machine-readable CLI output use this module.
Claims do NOT: they are hashed over the fixed-width binary packing in
peertrade/core/claim.py.

RFC 8785: https://www.rfc-editor.org/rfc/rfc8785
"""


try:
    import jcs as _jcs
except ImportError as exc:
    raise ImportError(
        "Peertrade requires the 'jcs' package for RFC 8785 compliance.\n"
        "Install with: pip install jcs\n"
        f"Original error: {exc}"
    ) from exc


def canonicalize(obj: dict) -> bytes:
    """
    Encode a dict to RFC 8785 canonical JSON bytes.

    Output is deterministic regardless of key insertion order.
    All values must be JSON-primitive (str, int, float, bool, None, list, dict).
    """
    return _jcs.canonicalize(obj)
