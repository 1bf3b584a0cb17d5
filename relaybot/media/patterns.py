"""
Platform URL patterns recognised for media extraction.

Order matters: the first pattern that matches anywhere in the text wins.
"""

import re
from typing import List, Optional, Tuple

MEDIA_PATTERNS: List[Tuple[str, "re.Pattern[str]"]] = [
    ("instagram", re.compile(r"https?://(?:www\.)?instagram\.com/(?:p|reels?|tv|stories)/[^\s]+", re.I)),
    ("tiktok", re.compile(r"https?://(?:(?:www|m|vm|vt)\.)?tiktok\.com/[^\s]+", re.I)),
    ("twitter", re.compile(r"https?://(?:(?:www|mobile)\.)?(?:twitter|x)\.com/\w{1,15}/status/\d+[^\s]*", re.I)),
    ("youtube", re.compile(
        r"https?://(?:(?:www|m|music)\.)?(?:youtube\.com/(?:watch\?[^\s]*v=|shorts/|live/|embed/)|youtu\.be/)[0-9A-Za-z_-]{6,}[^\s]*",
        re.I,
    )),
    ("facebook", re.compile(r"https?://(?:(?:www|m|mbasic|web)\.)?(?:facebook\.com|fb\.watch)/[^\s]+", re.I)),
    ("reddit", re.compile(r"https?://(?:(?:www|old|m)\.)?(?:reddit\.com/r/[\w-]+/(?:comments|s)/[^\s]+|redd\.it/[^\s]+)", re.I)),
    ("pinterest", re.compile(r"https?://(?:[a-z]{2,3}\.)?(?:pinterest\.[a-z.]+/pin/[^\s]+|pin\.it/[^\s]+)", re.I)),
    ("soundcloud", re.compile(r"https?://(?:(?:www|m|on)\.)?soundcloud\.(?:com|app\.goo\.gl)/[^\s]+", re.I)),
    ("snapchat", re.compile(r"https?://(?:www\.)?snapchat\.com/(?:spotlight|add|t)/[^\s]+", re.I)),
    ("twitch", re.compile(r"https?://(?:(?:www|m)\.)?(?:twitch\.tv/\w+/clip/|clips\.twitch\.tv/)[^\s]+", re.I)),
    ("vimeo", re.compile(r"https?://(?:(?:www|player)\.)?vimeo\.com/(?:video/)?\d+[^\s]*", re.I)),
    ("streamable", re.compile(r"https?://(?:www\.)?streamable\.com/[0-9A-Za-z]+", re.I)),
    ("bilibili", re.compile(r"https?://(?:(?:www|m)\.)?(?:bilibili\.(?:com|tv)/video/|b23\.tv/)[^\s]+", re.I)),
    ("tumblr", re.compile(r"https?://(?:[\w-]+\.)?tumblr\.com/[^\s]+", re.I)),
    ("dailymotion", re.compile(r"https?://(?:www\.)?(?:dailymotion\.com/video/|dai\.ly/)[0-9A-Za-z]+", re.I)),
    ("loom", re.compile(r"https?://(?:www\.)?loom\.com/share/[0-9A-Za-z]+", re.I)),
    ("ok", re.compile(r"https?://(?:www\.)?ok\.ru/video/\d+", re.I)),
    ("rutube", re.compile(r"https?://(?:www\.)?rutube\.ru/(?:video|shorts)/[0-9A-Za-z]+", re.I)),
    ("vk", re.compile(r"https?://(?:(?:www|m)\.)?vk(?:video\.ru|\.com)/(?:video|clip)-?\d+_\d+[^\s]*", re.I)),
    ("xiaohongshu", re.compile(r"https?://(?:www\.)?(?:xiaohongshu\.com/(?:explore|discovery/item)/|xhslink\.com/)[^\s]+", re.I)),
]


def extract_url(text: Optional[str]) -> Optional[str]:
    """Return the first supported media URL found in ``text``, if any."""
    if not text or not isinstance(text, str):
        return None

    for _platform, pattern in MEDIA_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(0)
    return None


def detect_platform(url: str) -> Optional[str]:
    for platform, pattern in MEDIA_PATTERNS:
        if pattern.search(url):
            return platform
    return None
