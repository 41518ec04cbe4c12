"""Pure builders and readers for the Collecta pubsub stanzas.

Outbound stanzas carry their namespaces as ``xmlns`` attributes, the way an
XMPP stream writes them. Inbound stanzas parsed by ElementTree use Clark
notation (``{ns}tag``) instead, so the readers accept either form.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from collections.abc import Iterator

from .errors import DispatchError
from .models import Subscription
from .protocol import (
    FIELD_APIKEY,
    FIELD_QUERY,
    FIELD_RATE_LIMIT,
    FIELD_SCORE_THRESHOLD,
    FORM_OPTIONS,
    NS_ATOM,
    NS_DATAFORMS,
    NS_PUBSUB,
    NS_PUBSUB_SUBSCRIBE_OPTIONS,
    NS_RESULTSET,
    PUBSUB_NODE,
    PUBSUB_SERVICE,
)


def local_name(elem: ET.Element) -> str:
    tag = elem.tag if isinstance(elem.tag, str) else ""
    return tag.rsplit("}", 1)[-1]


def namespace_of(elem: ET.Element) -> str | None:
    """Namespace of an element, from Clark notation or an xmlns attribute."""
    tag = elem.tag if isinstance(elem.tag, str) else ""
    if tag.startswith("{"):
        return tag[1:].split("}", 1)[0]
    return elem.get("xmlns")


def find_child(elem: ET.Element, name: str) -> ET.Element | None:
    for child in elem:
        if local_name(child) == name:
            return child
    return None


# --- Outbound requests ---


def _iq(iq_type: str, to: str = PUBSUB_SERVICE) -> ET.Element:
    return ET.Element("iq", {"to": to, "type": iq_type})


def _add_field(form: ET.Element, var: str, value: str, field_type: str | None = None) -> None:
    attrs = {"var": var}
    if field_type:
        attrs["type"] = field_type
    field = ET.SubElement(form, "field", attrs)
    ET.SubElement(field, "value").text = value


def _add_options_form(pubsub: ET.Element, form_type: str, search: Subscription) -> None:
    """Append the <options> data form carrying the api key and query.

    Rate limit and score threshold are passed through as-is when set, as
    ``x-collecta#rate_limit`` and ``x-collecta#score_threshold``. The legacy
    JavaScript plug-in never sent these fields, so requests carrying them are
    not wire-compatible with it and the service may ignore or reject them.
    """
    options = ET.SubElement(pubsub, "options", {"node": PUBSUB_NODE})
    form = ET.SubElement(options, "x", {"xmlns": NS_DATAFORMS, "type": "submit"})
    _add_field(form, "FORM_TYPE", form_type, field_type="hidden")
    _add_field(form, FIELD_APIKEY, search.api_key)
    _add_field(form, FIELD_QUERY, search.query)
    if search.rate_limit is not None:
        _add_field(form, FIELD_RATE_LIMIT, str(search.rate_limit))
    if search.score_threshold is not None:
        _add_field(form, FIELD_SCORE_THRESHOLD, str(search.score_threshold))


def build_history_request(search: Subscription) -> ET.Element:
    """IQ get for the ``context_count`` most recent items matching the query."""
    iq = _iq("get")
    pubsub = ET.SubElement(iq, "pubsub", {"xmlns": NS_PUBSUB})
    ET.SubElement(pubsub, "items", {"node": PUBSUB_NODE})
    _add_options_form(pubsub, FORM_OPTIONS, search)
    result_set = ET.SubElement(pubsub, "set", {"xmlns": NS_RESULTSET})
    ET.SubElement(result_set, "max").text = str(search.context_count)
    return iq


def build_subscribe_request(search: Subscription, jid: str) -> ET.Element:
    """IQ set registering ``jid`` for live results of the query."""
    iq = _iq("set")
    pubsub = ET.SubElement(iq, "pubsub", {"xmlns": NS_PUBSUB})
    ET.SubElement(pubsub, "subscribe", {"jid": jid, "node": PUBSUB_NODE})
    _add_options_form(pubsub, NS_PUBSUB_SUBSCRIBE_OPTIONS, search)
    return iq


def build_unsubscribe_request(jid: str) -> ET.Element:
    """Node-level IQ set dropping every search subscription of ``jid``."""
    iq = _iq("set")
    pubsub = ET.SubElement(iq, "pubsub", {"xmlns": NS_PUBSUB})
    ET.SubElement(pubsub, "unsubscribe", {"node": PUBSUB_NODE, "jid": jid})
    return iq


def build_requests(search: Subscription, jid: str) -> tuple[ET.Element, ET.Element]:
    """The (history, subscribe) request pair issued for one subscribe call."""
    return build_history_request(search), build_subscribe_request(search, jid)


def form_fields(iq: ET.Element) -> dict[str, str]:
    """Map of data form field names to values found anywhere in ``iq``."""
    fields: dict[str, str] = {}
    for elem in iq.iter():
        if local_name(elem) == "field" and elem.get("var"):
            value = find_child(elem, "value")
            fields[elem.get("var")] = value.text if value is not None else ""
    return fields


# --- Inbound payloads ---


def iter_entries(elem: ET.Element) -> Iterator[ET.Element]:
    """Yield every Atom <entry> under ``elem`` in document order.

    Elements named ``entry`` in any other namespace are not results and are
    skipped.
    """
    for child in elem.iter():
        if local_name(child) == "entry" and namespace_of(child) == NS_ATOM:
            yield child


def iter_headers(message: ET.Element) -> Iterator[tuple[str, str]]:
    """Yield (name, value) for each SHIM header of a message."""
    for child in message.iter():
        if local_name(child) == "header":
            yield child.get("name", ""), (child.text or "").strip()


def has_query_header(message: ET.Element, query: str | None = None) -> bool:
    """True if the message carries the query header.

    With ``query`` given, the header value must also equal it.
    """
    for name, value in iter_headers(message):
        if name == FIELD_QUERY and (query is None or value == query):
            return True
    return False


def check_notification(message: ET.Element) -> None:
    """Raise DispatchError if a notification has no pubsub event payload."""
    if find_child(message, "event") is None:
        raise DispatchError("notification has no <event> payload")
    mistagged = [
        child
        for child in message.iter()
        if local_name(child) == "entry" and namespace_of(child) != NS_ATOM
    ]
    if mistagged and not any(True for _ in iter_entries(message)):
        raise DispatchError(
            f"notification has {len(mistagged)} entries outside the Atom namespace"
        )


def entry_summary(entry: ET.Element) -> dict:
    """Serialize an Atom entry for JSON: id, title, link, published and raw XML."""
    link = None
    for child in entry:
        if local_name(child) == "link" and child.get("rel", "alternate") == "alternate":
            link = child.get("href")
            break

    def text(name: str) -> str | None:
        child = find_child(entry, name)
        return child.text if child is not None else None

    return {
        "id": text("id"),
        "title": text("title"),
        "link": link,
        "published": text("published"),
        "xml": ET.tostring(entry, encoding="unicode"),
    }


def error_condition(response: ET.Element) -> str | None:
    """Defined condition of an IQ error response (e.g. 'not-authorized')."""
    if not isinstance(response, ET.Element):
        return None
    error = find_child(response, "error")
    if error is None:
        return None
    for child in error:
        if local_name(child) != "text":
            return local_name(child)
    return None
