"""
Request blocking policy applied during capture.

Media, fonts and untyped requests are always dropped; analytics, ads,
chat, review widgets and similar third parties are dropped by domain or
URL pattern so a capture finishes well inside its timeout.
"""

from __future__ import annotations

BLOCKED_RESOURCE_TYPES = frozenset({"media", "font", "other"})

BLOCKED_DOMAINS = (
    # analytics and tracking
    "google-analytics.com",
    "googletagmanager.com",
    "facebook.net",
    "facebook.com/tr",
    "klaviyo.com",
    "hotjar.com",
    "intercom.io",
    "segment.com",
    "mixpanel.com",
    "analytics.tiktok.com",
    "doubleclick.net",
    "pinterest.com/v3",
    "fullstory.com",
    "mouseflow.com",
    "luckyorange.com",
    # ads
    "googleadservices.com",
    "googlesyndication.com",
    "adroll.com",
    "criteo.com",
    "outbrain.com",
    "taboola.com",
    # social widgets
    "platform.twitter.com",
    "platform.instagram.com",
    # chat
    "tawk.to",
    "zendesk.com",
    "drift.com",
    "gorgias.chat",
    "gorgias.com",
    # reviews and UGC
    "yotpo.com",
    "stamped.io",
    "judge.me",
    "loox.io",
    # maps
    "maps.googleapis.com",
    "maps.google.com",
    "cdn.jsdelivr.net/npm/analytics",
    "unpkg.com/analytics",
)

BLOCKED_PATTERNS = (
    "track",
    "pixel",
    "ads",
    "analytics",
    "beacon",
    "telemetry",
    "conversion",
    "gtm.js",
    "ga.js",
    "fbevents.js",
    "klaviyo",
    "yotpo",
    "gorgias",
)

VIDEO_EXTENSIONS = (".mp4", ".webm", ".ogg")
HEAVY_IMAGE_HOSTS = ("giphy", "tenor")


def should_block_resource(url: str, resource_type: str) -> bool:
    if resource_type in BLOCKED_RESOURCE_TYPES:
        return True
    url_lower = (url or "").lower()
    if any(extension in url_lower for extension in VIDEO_EXTENSIONS):
        return True
    if any(domain in url_lower for domain in BLOCKED_DOMAINS):
        return True
    if any(pattern in url_lower for pattern in BLOCKED_PATTERNS):
        return True
    return resource_type == "image" and any(host in url_lower for host in HEAVY_IMAGE_HOSTS)
