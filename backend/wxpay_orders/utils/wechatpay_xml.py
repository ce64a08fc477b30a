"""微信支付 v2 XML 报文编解码

报文格式为 ``<xml>`` 根节点下的一层扁平字段，字段值全部按字符串处理。
"""
from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from collections.abc import Mapping
from xml.sax.saxutils import escape

_TAG_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_.\-]*$")
_DIGITS_RE = re.compile(r"^[0-9]+$")
_ILLEGAL_XML_CHARS_RE = re.compile("[^\u0009\u000a\u000d\u0020-\ud7ff\ue000-\ufffd\U00010000-\U0010ffff]")
_DOCTYPE_RE = re.compile(r"<!DOCTYPE|<!ENTITY", re.IGNORECASE)


class WireCodecError(ValueError):
    pass


def _render_value(value: str) -> str:
    if _DIGITS_RE.match(value):
        return value
    if "\r" in value:
        # CDATA 中的回车会被解析器规范化为换行
        return escape(value, {"\r": "&#13;"})
    return "<![CDATA[" + value.replace("]]>", "]]]]><![CDATA[>") + "]]>"


def encode_xml(params: Mapping[str, object]) -> str:
    parts: list[str] = ["<xml>"]
    for key, raw in params.items():
        if raw is None:
            continue
        tag = str(key)
        if not _TAG_RE.match(tag):
            raise WireCodecError(f"invalid xml field name: {tag!r}")
        value = str(raw)
        if _ILLEGAL_XML_CHARS_RE.search(value):
            raise WireCodecError(f"field {tag} contains characters not allowed in xml")
        parts.append(f"<{tag}>{_render_value(value)}</{tag}>")
    parts.append("</xml>")
    return "".join(parts)


def decode_xml(body: str | bytes) -> dict[str, str]:
    text = body.decode("utf-8", errors="replace") if isinstance(body, bytes) else body
    if not text.strip():
        raise WireCodecError("empty xml body")
    if _DOCTYPE_RE.search(text.split("<xml", 1)[0]):
        raise WireCodecError("xml doctype/entity declarations are not accepted")

    try:
        root = ET.fromstring(body)
    except ET.ParseError as e:
        raise WireCodecError(f"malformed xml: {e}") from e

    if root.tag != "xml":
        raise WireCodecError(f"unexpected xml root: {root.tag}")

    out: dict[str, str] = {}
    for child in root:
        if len(child) > 0:
            raise WireCodecError(f"nested xml element not supported: {child.tag}")
        if child.tag in out:
            raise WireCodecError(f"duplicated xml field: {child.tag}")
        out[str(child.tag)] = child.text or ""
    return out
