from __future__ import annotations

import html
import re
import xml.etree.ElementTree as etree
from dataclasses import dataclass, field

import markdown
from markdown import util
from markdown.blockprocessors import BlockProcessor
from markdown.extensions import Extension
from markdown.inlinepatterns import InlineProcessor
from markdown.treeprocessors import Treeprocessor

from .utils import slugify

DEFAULT_HIDE_TIP = "点击查看"
ADMONITION_TITLES = {"success": "成功", "fail": "错误", "warn": "注意"}
TOC_LEVELS = ("h2", "h3", "h4")

ADMONITION_OPEN_RE = re.compile(r"^ {0,3}:::[ \t]*(?P<kind>success|fail|warn)(?:[ \t]+(?P<title>.*?))?[ \t]*$")
HIDE_OPEN_RE = re.compile(r"^ {0,3}:::[ \t]*hide\[.*?\][ \t]*:::[ \t]*$")
CONTAINER_CLOSE_RE = re.compile(r"^ {0,3}:::[ \t]*$")
ESCAPED_CHAR_RE = re.compile(f"{util.STX}([0-9]+){util.ETX}")

RE_HIDE_BLOCK = r":::\s*hide\[(?P<label>[^\]]*)\]\s*:::\s*(?P<body>(?:(?!:::).)*?)\s*:::(?!\s*hide\[)"
RE_HIDE_INLINE = r":::\s*hide\[(?P<body>[^\]]*)\](?:\{.*?\})?\s*:::"


@dataclass
class TocEntry:
    id: str
    text: str
    level: str


@dataclass
class Rendered:
    html: str
    toc: list[TocEntry] = field(default_factory=list)


class AdmonitionContainerProcessor(BlockProcessor):
    """Fenced `::: kind [title]` ... `:::` containers, nestable, may span blank lines."""

    def test(self, parent, block):
        return any(ADMONITION_OPEN_RE.match(line) for line in block.split("\n"))

    def run(self, parent, blocks):
        lines = blocks.pop(0).split("\n")
        start = next(index for index, line in enumerate(lines) if ADMONITION_OPEN_RE.match(line))
        # An opener may directly follow text; that text stays an ordinary paragraph.
        if start:
            self.parser.parseBlocks(parent, ["\n".join(lines[:start])])
        opener, rest = lines[start], "\n".join(lines[start + 1 :])
        match = ADMONITION_OPEN_RE.match(opener)
        kind = match.group("kind")
        title = (match.group("title") or "").strip() or ADMONITION_TITLES[kind]

        inner, leftover = self.collect(rest, blocks)
        box = etree.SubElement(parent, "div")
        box.set("class", f"admonition {kind}")
        label = etree.SubElement(box, "span")
        label.set("class", "admonition-title")
        label.text = util.AtomicString(title)
        self.parser.parseChunk(box, "\n".join(inner))
        if leftover:
            blocks.insert(0, "\n".join(leftover))

    def collect(self, first: str, blocks: list[str]) -> tuple[list[str], list[str]]:
        inner: list[str] = []
        depth = 1
        pending = first.split("\n") if first else []
        while True:
            for index, line in enumerate(pending):
                if CONTAINER_CLOSE_RE.match(line):
                    depth -= 1
                    if depth == 0:
                        return inner, pending[index + 1 :]
                elif ADMONITION_OPEN_RE.match(line) or HIDE_OPEN_RE.match(line):
                    depth += 1
                inner.append(line)
            # Unclosed containers run to the end of the document.
            if not blocks:
                return inner, []
            if inner:
                inner.append("")
            pending = blocks.pop(0).split("\n")


class AdmonitionExtension(Extension):
    def extendMarkdown(self, md):
        md.parser.blockprocessors.register(AdmonitionContainerProcessor(md.parser), "admonition_container", 105)


class HideTextProcessor(InlineProcessor):
    def __init__(self, pattern, md, hide_tip: str, use_label: bool):
        super().__init__(pattern, md)
        self.hide_tip = hide_tip
        self.use_label = use_label

    def handleMatch(self, m, data):
        tip = self.hide_tip
        if self.use_label:
            tip = m.group("label").strip() or self.hide_tip
        el = etree.Element("span")
        el.set("class", "hide-text")
        el.set("data-tip", tip)
        el.text = m.group("body")
        return el, m.start(0), m.end(0)


class HideTextExtension(Extension):
    def __init__(self, hide_tip: str = DEFAULT_HIDE_TIP, **kwargs):
        super().__init__(**kwargs)
        self.hide_tip = hide_tip or DEFAULT_HIDE_TIP

    def extendMarkdown(self, md):
        # Below backticks so code spans keep the syntax literally.
        md.inlinePatterns.register(
            HideTextProcessor(RE_HIDE_BLOCK, md, self.hide_tip, use_label=True), "hide_text_block", 186
        )
        md.inlinePatterns.register(
            HideTextProcessor(RE_HIDE_INLINE, md, self.hide_tip, use_label=False), "hide_text_inline", 185
        )


def element_text(el: etree.Element) -> str:
    # Code span text is already entity-escaped by the backtick pattern.
    text = html.unescape(el.text or "") if el.tag == "code" else el.text or ""
    parts = [text]
    for child in el:
        parts.append(element_text(child))
        parts.append(child.tail or "")
    return "".join(parts)


def heading_text(el: etree.Element) -> str:
    text = element_text(el)
    text = util.HTML_PLACEHOLDER_RE.sub("", text)
    text = ESCAPED_CHAR_RE.sub(lambda m: chr(int(m.group(1))), text)
    return " ".join(text.split())


class HeadingAnchorTreeprocessor(Treeprocessor):
    def __init__(self, md, extension: HeadingAnchorExtension):
        super().__init__(md)
        self.extension = extension

    def run(self, root):
        for el in root.iter():
            if el.tag not in TOC_LEVELS:
                continue
            text = heading_text(el)
            anchor = self.extension.unique_id(slugify(text) or "section")
            el.set("id", anchor)
            self.extension.toc.append(TocEntry(id=anchor, text=text, level=el.tag))


class HeadingAnchorExtension(Extension):
    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.reset()

    def extendMarkdown(self, md):
        md.registerExtension(self)
        md.treeprocessors.register(HeadingAnchorTreeprocessor(md, self), "heading_anchors", 5)

    def reset(self) -> None:
        self.toc: list[TocEntry] = []
        self.seen: dict[str, int] = {}

    def unique_id(self, base: str) -> str:
        count = self.seen.get(base, 0)
        self.seen[base] = count + 1
        return base if count == 0 else f"{base}-{count}"


class MarkdownTransformer:
    def __init__(self, hide_tip: str = DEFAULT_HIDE_TIP):
        self.anchors = HeadingAnchorExtension()
        self.md = markdown.Markdown(
            extensions=[
                "fenced_code",
                "tables",
                "codehilite",
                AdmonitionExtension(),
                HideTextExtension(hide_tip),
                self.anchors,
            ],
            extension_configs={"codehilite": {"guess_lang": False, "css_class": "codehilite"}},
        )

    def render(self, text: str) -> Rendered:
        self.md.reset()
        html_content = self.md.convert(text)
        return Rendered(html=html_content, toc=list(self.anchors.toc))
