"""
User-Agent classification for click events.

Bot detection, device/browser/OS fingerprinting and IP anonymization.
Matching is case-insensitive substring search; order matters (tablets
before phones, Edge before Chrome, iOS before macOS).
"""
import ipaddress
import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class UserAgentInfo:
    """Classification of a single User-Agent header."""
    is_bot: bool
    bot_type: Optional[str] = None
    device_type: str = "unknown"
    browser: Optional[str] = None
    os: Optional[str] = None


# Known crawlers and link-preview fetchers
BOT_USER_AGENTS = (
    "googlebot",
    "bingbot",
    "yandexbot",
    "duckduckbot",
    "slurp",
    "baiduspider",
    "facebookexternalhit",
    "twitterbot",
    "linkedinbot",
    "embedly",
    "showyoubot",
    "outbrain",
    "pinterest",
    "developers.google.com",
    "slackbot",
    "vkshare",
    "w3c_validator",
    "redditbot",
    "applebot",
    "whatsapp",
    "flipboard",
    "tumblr",
    "bitlybot",
    "skypeuripreview",
    "nuzzel",
    "discordbot",
    "google page speed",
    "qwantify",
    "bitrix link preview",
    "xing-contenttabreceiver",
    "chrome-lighthouse",
    "telegrambot",
)

GENERIC_BOT_MARKERS = ("bot", "crawler", "spider", "scraper")

TABLET_MARKERS = ("ipad", "tablet", "playbook")
MOBILE_MARKERS = ("mobile", "android", "iphone", "ipod", "windows phone", "blackberry")
DESKTOP_MARKERS = ("windows", "macintosh", "linux", "x11")


def detect_bot(user_agent: Optional[str]) -> tuple:
    """Return (is_bot, bot_type). A missing UA is not classified as a bot here."""
    if not user_agent:
        return False, None
    ua = user_agent.lower()
    for bot in BOT_USER_AGENTS:
        if bot in ua:
            return True, bot
    if any(marker in ua for marker in GENERIC_BOT_MARKERS):
        return True, "generic"
    return False, None


def detect_device_type(user_agent: Optional[str]) -> str:
    if not user_agent:
        return "unknown"
    ua = user_agent.lower()
    if any(m in ua for m in TABLET_MARKERS):
        return "tablet"
    if any(m in ua for m in MOBILE_MARKERS):
        return "mobile"
    if any(m in ua for m in DESKTOP_MARKERS):
        return "desktop"
    return "unknown"


def detect_browser(user_agent: Optional[str]) -> Optional[str]:
    if not user_agent:
        return None
    ua = user_agent.lower()
    if "edg/" in ua:
        return "Edge"
    if "opr/" in ua or "opera" in ua:
        return "Opera"
    if "chromium" in ua:
        return "Chromium"
    if "chrome" in ua:
        return "Chrome"
    if "firefox" in ua:
        return "Firefox"
    if "safari" in ua:
        return "Safari"
    if "msie" in ua or "trident" in ua:
        return "Internet Explorer"
    return "Unknown"


def detect_os(user_agent: Optional[str]) -> Optional[str]:
    if not user_agent:
        return None
    ua = user_agent.lower()
    if "windows nt 10" in ua:
        return "Windows 10"
    if "windows" in ua:
        return "Windows"
    if "iphone" in ua or "ipad" in ua or "ipod" in ua:
        return "iOS"
    if "android" in ua:
        return "Android"
    if "cros" in ua or "chromeos" in ua:
        return "ChromeOS"
    if "mac os x" in ua or "macintosh" in ua:
        return "macOS"
    if "linux" in ua:
        return "Linux"
    return "Unknown"


def classify_user_agent(user_agent: Optional[str]) -> UserAgentInfo:
    is_bot, bot_type = detect_bot(user_agent)
    return UserAgentInfo(
        is_bot=is_bot,
        bot_type=bot_type,
        device_type=detect_device_type(user_agent),
        browser=detect_browser(user_agent),
        os=detect_os(user_agent),
    )


def anonymize_ip(ip: Optional[str]) -> Optional[str]:
    """
    Drop the host part of an address.

    IPv4 keeps the first three octets (last one zeroed); IPv6 keeps the first
    four groups. Unparseable values are returned unchanged.
    """
    if not ip:
        return None
    try:
        addr = ipaddress.ip_address(ip.strip())
    except ValueError:
        logger.debug(f"Could not parse IP for anonymization: {ip!r}")
        return ip
    if addr.version == 4:
        octets = str(addr).split(".")
        octets[3] = "0"
        return ".".join(octets)
    groups = addr.exploded.split(":")[:4]
    return ":".join(g.lstrip("0") or "0" for g in groups) + "::"
