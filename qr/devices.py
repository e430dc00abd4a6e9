# qr/devices.py

from typing import Optional

from models.schemas import DeviceInfo

# Checked in order; first hit wins. Edge and Opera UAs also contain "Chrome".
_BROWSERS = (
    ("Edg", "Edge"),
    ("OPR", "Opera"),
    ("Firefox", "Firefox"),
    ("Chrome", "Chrome"),
    ("CriOS", "Chrome"),
    ("Safari", "Safari"),
)

def _detect_browser(ua: str) -> str:
    for token, name in _BROWSERS:
        if token in ua:
            return name
    return "Unknown"

def _detect_os(ua: str) -> str:
    # iOS and Android UAs also mention "Mac OS X" / "Linux"
    if "iPhone" in ua or "iPad" in ua or "iPod" in ua:
        return "iOS"
    if "Android" in ua:
        return "Android"
    if "Windows" in ua:
        return "Windows"
    if "Mac OS" in ua or "Macintosh" in ua:
        return "macOS"
    if "Linux" in ua or "X11" in ua:
        return "Linux"
    return "Unknown"

def classify_user_agent(user_agent: Optional[str]) -> DeviceInfo:
    """
    Coarse device classification from a User-Agent header.
    Anything without a recognisable platform is "unknown" rather than guessed.
    """
    ua = (user_agent or "").strip()
    if not ua or ua == "Unknown":
        return DeviceInfo()

    browser = _detect_browser(ua)
    os_name = _detect_os(ua)

    if "iPad" in ua or "Tablet" in ua or (os_name == "Android" and "Mobile" not in ua):
        device_type = "tablet"
    elif "Mobile" in ua or "iPhone" in ua or "iPod" in ua:
        device_type = "mobile"
    elif os_name in ("Windows", "macOS", "Linux"):
        device_type = "desktop"
    else:
        device_type = "unknown"

    return DeviceInfo(
        browser=browser,
        os=os_name,
        device_type=device_type,
        is_android=os_name == "Android",
        is_ios=os_name == "iOS",
        is_desktop=device_type == "desktop",
        is_mobile=device_type == "mobile",
        is_tablet=device_type == "tablet",
    )
