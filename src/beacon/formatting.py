"""Key and value template substitution.

Templates understand the following placeholders:

    %H  host address
    %P  port
    %T  tag           (values only)
    %S  start time    (values only)
"""

import json
import posixpath


def join_key_path(*parts: str) -> str:
    """Join key segments into a single normalised absolute-style path."""
    joined = "/".join(p for p in parts if p)
    if not joined:
        return ""
    cleaned = posixpath.normpath(joined)
    # normpath keeps a leading "//"; collapse it like a plain path join would
    if cleaned.startswith("//"):
        cleaned = "/" + cleaned.lstrip("/")
    return cleaned


def format_key(template: str, host: str, port: int) -> str:
    return template.replace("%H", host).replace("%P", str(port))


def format_value(template: str, host: str, port: int, tag: str = "", start_time: str = "") -> str:
    """Render the registry value.

    With an empty template the value is a JSON object holding the host, and
    the port, start time and tag when they are set.
    """
    if not template:
        data: dict = {"host": host}
        if port > 0:
            data["port"] = port
        if start_time:
            data["start_time"] = start_time
        if tag:
            data["tag"] = tag
        return json.dumps(data)

    value = template.replace("%H", host)
    value = value.replace("%P", str(port))
    value = value.replace("%S", start_time)
    value = value.replace("%T", tag)
    return value
