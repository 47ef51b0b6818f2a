"""Invite-link parameters: ``t.me/<bot>?start=<type>_<code>``."""
from __future__ import annotations

from typing import Optional

from models.schemas import DeepLinkData

TYPE_SCHOOL = "school"
TYPE_REFERRAL = "dl"


def parse_deep_link(param: str) -> Optional[DeepLinkData]:
    """
    Split a start parameter on the first underscore.

    ``school_abc`` → type "school", code "abc"; ``promo`` → type "promo",
    empty code. Blank input yields None.
    """
    param = (param or "").strip()
    if not param:
        return None
    link_type, sep, code = param.partition("_")
    if not sep:
        return DeepLinkData(type=param, code="")
    return DeepLinkData(type=link_type, code=code)


def extract_start_param(text: str) -> str:
    """Return the argument of a ``/start`` command, or ""."""
    text = (text or "").strip()
    if not text.startswith("/start"):
        return ""
    return text[len("/start"):].strip()
