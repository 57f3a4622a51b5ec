"""In-page scripts evaluated through a :class:`RenderingCapability`.

Every script is a single arrow function taking one ``args`` object that
always contains ``requestId``; the function returns the reply message.
"""

from __future__ import annotations

from typing import Mapping

from factscout.rendering.base import (
    CRAWLER_LINKS_EXTRACTED,
    DOM_TEXT_CONTENT,
    EXTRACTION_RESULT,
    RenderScript,
)

_SELECTOR_EXTRACTION_JS = """\
(args) => {
  try {
    const data = {};
    for (const [field, spec] of Object.entries(args.specs)) {
      const read = (el) => {
        const raw = spec.attribute ? el.getAttribute(spec.attribute) : el.textContent;
        return raw == null ? null : String(raw).trim();
      };
      if (spec.multiple) {
        const values = Array.from(document.querySelectorAll(spec.selector)).map(read).filter(v => v);
        data[field] = values.length ? values : null;
      } else {
        const el = document.querySelector(spec.selector);
        const value = el ? read(el) : null;
        data[field] = value ? value : null;
      }
    }
    return { type: 'EXTRACTION_RESULT', requestId: args.requestId, data };
  } catch (err) {
    return {
      type: 'EXTRACTION_ERROR',
      requestId: args.requestId,
      error: String((err && err.message) || err),
    };
  }
}
"""

_LINK_EXTRACTION_JS = """\
(args) => {
  const seen = new Set();
  for (const a of document.querySelectorAll('a[href]')) {
    try {
      const href = new URL(a.getAttribute('href'), window.location.href).href;
      if (/^https?:/i.test(href)) seen.add(href);
    } catch (err) {
      // unparsable href
    }
  }
  return {
    type: 'CRAWLER_LINKS_EXTRACTED',
    requestId: args.requestId,
    currentUrl: window.location.href,
    depth: args.depth,
    links: Array.from(seen),
  };
}
"""

_VISIBLE_TEXT_JS = """\
(args) => {
  const text = document.body ? document.body.innerText || '' : '';
  return {
    type: 'DOM_TEXT_CONTENT',
    requestId: args.requestId,
    data: text.replace(/\\s+/g, ' ').trim().slice(0, args.limit),
  };
}
"""


def selector_extraction_script(specs: Mapping[str, Mapping[str, object]]) -> RenderScript:
    """Query each selector spec; *specs* maps field name to ``{selector, attribute, multiple}``."""
    return RenderScript(EXTRACTION_RESULT, _SELECTOR_EXTRACTION_JS, {"specs": dict(specs)})


def link_extraction_script(depth: int) -> RenderScript:
    return RenderScript(CRAWLER_LINKS_EXTRACTED, _LINK_EXTRACTION_JS, {"depth": depth})


def visible_text_script(limit: int) -> RenderScript:
    return RenderScript(DOM_TEXT_CONTENT, _VISIBLE_TEXT_JS, {"limit": limit})
