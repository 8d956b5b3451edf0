"""
Print certificate HTML to PDF with ReportLab platypus.

Certificates are authored as HTML (Jinja2 templates) and printed here. The
printer understands the subset of HTML the templates use:

- block elements (h1, h2, p, div, td) become Paragraphs
- inline b and u become Paragraph markup
- tables become platypus Tables (``data-widths`` gives column percentages;
  classes ``info`` and ``boxed`` pick the table style)
- ``<img src="data:image/...;base64,...">`` becomes an Image flowable
- ``<hr>`` becomes a rule; ``div.spacer`` a vertical gap
- ``<body data-watermark="..." data-border="true">`` draws a diagonal
  watermark and a double page border on every page

Entry point: print_html_to_pdf(html) -> bytes
"""
from __future__ import annotations

import base64
import binascii
import logging
import re
from html import escape
from html.parser import HTMLParser
from io import BytesIO
from typing import Dict, List, Optional

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_JUSTIFY, TA_LEFT, TA_RIGHT
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader
from reportlab.platypus.doctemplate import LayoutError
from reportlab.platypus import (
    HRFlowable,
    Image,
    KeepTogether,
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)

logger = logging.getLogger(__name__)


class PrintError(Exception):
    """HTML could not be printed to PDF."""
    pass


VOID_TAGS = {'img', 'hr', 'meta'}
SKIP_TAGS = {'head', 'title', 'meta'}
INLINE_TAGS = {'b', 'u'}

IMAGE_ALIGN = {TA_LEFT: 'LEFT', TA_CENTER: 'CENTER', TA_RIGHT: 'RIGHT', TA_JUSTIFY: 'CENTER'}

# Style properties children inherit from their container
INHERITABLE = {'alignment', 'fontName', 'fontSize', 'leading', 'textColor'}

BRAND_BLUE = colors.HexColor('#1e3a8a')

CLASS_STYLES: Dict[str, dict] = {
    'title': dict(fontName='Times-Bold', fontSize=18, leading=24, alignment=TA_CENTER, spaceBefore=10, spaceAfter=4),
    'subtitle': dict(fontName='Times-Italic', fontSize=10, leading=13, alignment=TA_CENTER, spaceAfter=8),
    'header-line': dict(fontSize=10, leading=12, alignment=TA_CENTER, spaceAfter=0),
    'cert-number': dict(fontName='Times-Bold', fontSize=10.5, leading=14, alignment=TA_RIGHT),
    'to-whom': dict(fontName='Times-Bold', spaceBefore=8),
    'indent': dict(firstLineIndent=36),
    'center': dict(alignment=TA_CENTER),
    'label': dict(fontName='Times-Bold'),
    'signature-name': dict(fontName='Times-Bold', alignment=TA_CENTER, spaceBefore=30, spaceAfter=0),
    'signature-title': dict(fontSize=10, leading=12, alignment=TA_CENTER),
    'note': dict(fontSize=8.5, leading=11, textColor=colors.HexColor('#4b5563')),
    'photo-placeholder': dict(fontSize=8, leading=10, alignment=TA_CENTER, textColor=colors.grey),
}

# =============================================================================
# HTML -> node tree
# =============================================================================

class Node:
    __slots__ = ('tag', 'attrs', 'children', 'parent')

    def __init__(self, tag: str, attrs=None, parent: Optional['Node'] = None):
        self.tag = tag
        self.attrs = dict(attrs or {})
        self.children: list = []
        self.parent = parent

    @property
    def classes(self) -> set:
        return set((self.attrs.get('class') or '').split())

    def find(self, tag: str) -> Optional['Node']:
        for child in self.children:
            if isinstance(child, Node):
                if child.tag == tag:
                    return child
                found = child.find(tag)
                if found:
                    return found
        return None

    def text(self) -> str:
        return ''.join(c if isinstance(c, str) else c.text() for c in self.children)


class _TreeBuilder(HTMLParser):
    def __init__(self):
        super().__init__(convert_charrefs=True)
        self.root = Node('#root')
        self._stack = [self.root]

    def handle_starttag(self, tag, attrs):
        parent = self._stack[-1]
        node = Node(tag, attrs, parent)
        parent.children.append(node)
        if tag not in VOID_TAGS:
            self._stack.append(node)

    def handle_endtag(self, tag):
        # Pop back to the matching open element; stray end tags are ignored
        for i in range(len(self._stack) - 1, 0, -1):
            if self._stack[i].tag == tag:
                del self._stack[i:]
                break

    def handle_data(self, data):
        self._stack[-1].children.append(data)


def parse_html(html: str) -> Node:
    builder = _TreeBuilder()
    builder.feed(html or '')
    builder.close()
    return builder.root


# =============================================================================
# Helpers
# =============================================================================

def _length(value, default: Optional[float] = None) -> Optional[float]:
    """HTML length attribute to points ("80", "80px", "20mm", "12pt")."""
    if value is None or value == '':
        return default
    match = re.match(r'^\s*([\d.]+)\s*(px|mm|pt)?\s*$', str(value))
    if not match:
        return default
    number = float(match.group(1))
    unit = match.group(2) or 'px'
    if unit == 'mm':
        return number * mm
    if unit == 'pt':
        return number
    return number * 0.75


def _has_text(markup: str) -> bool:
    return bool(re.sub(r'<[^>]+>', '', markup).strip())


def _collapse(text: str) -> str:
    return re.sub(r'\s+', ' ', text)


# =============================================================================
# Renderer
# =============================================================================

class HtmlPrinter:
    """Render one HTML document to PDF bytes."""

    def __init__(self, pagesize=A4, margin: float = 16 * mm):
        self.pagesize = pagesize
        self.margin = margin
        self._base = self._base_styles()
        self._style_cache: Dict[tuple, ParagraphStyle] = {}

    @staticmethod
    def _base_styles() -> Dict[str, ParagraphStyle]:
        sheet = getSampleStyleSheet()
        body = ParagraphStyle(
            'CertBody', parent=sheet['Normal'], fontName='Times-Roman',
            fontSize=11.5, leading=17, alignment=TA_JUSTIFY, spaceAfter=6,
        )
        return {
            'body': body,
            'h1': ParagraphStyle('CertH1', parent=body, fontName='Times-Bold', fontSize=16, leading=20,
                                 alignment=TA_CENTER, spaceAfter=0, textColor=BRAND_BLUE),
            'h2': ParagraphStyle('CertH2', parent=body, fontName='Times-Bold', fontSize=12, leading=15,
                                 alignment=TA_CENTER, spaceAfter=2),
            'td': ParagraphStyle('CertTd', parent=body, alignment=TA_LEFT, spaceAfter=0, leading=14),
        }

    # -- styles ---------------------------------------------------------------

    def _own_context(self, node: Node, inherited: dict) -> dict:
        ctx = dict(inherited)
        for cls in sorted(node.classes):
            ctx.update(CLASS_STYLES.get(cls, {}))
        return ctx

    def _style(self, tag: str, ctx: dict) -> ParagraphStyle:
        base = self._base.get(tag, self._base['body'])
        key = (base.name, tuple(sorted((k, str(v)) for k, v in ctx.items())))
        style = self._style_cache.get(key)
        if style is None:
            style = ParagraphStyle(f"{base.name}-{len(self._style_cache)}", parent=base, **ctx)
            self._style_cache[key] = style
        return style

    # -- inline markup ----------------------------------------------------------

    def _markup(self, child) -> str:
        if isinstance(child, str):
            return escape(_collapse(child), quote=False)
        inner = ''.join(self._markup(c) for c in child.children)
        if child.tag in INLINE_TAGS:
            return f'<{child.tag}>{inner}</{child.tag}>'
        return inner

    def _flush(self, tag: str, inline: list, ctx: dict, out: list) -> None:
        if not inline:
            return
        markup = ''.join(self._markup(c) for c in inline).strip()
        inline.clear()
        if _has_text(markup):
            out.append(Paragraph(markup, self._style(tag, ctx)))

    # -- blocks -----------------------------------------------------------------

    def render_block(self, node: Node, inherited: dict, width: float) -> list:
        if node.tag in SKIP_TAGS:
            return []
        ctx = self._own_context(node, inherited)
        child_ctx = {k: v for k, v in ctx.items() if k in INHERITABLE}

        if node.tag == 'table':
            return self._table(node, child_ctx, width)
        if node.tag == 'img':
            image = self._image(node, width, ctx.get('alignment', TA_CENTER))
            return [image] if image else []
        if node.tag == 'hr':
            return [HRFlowable(width='100%', thickness=1, color=BRAND_BLUE, spaceBefore=4, spaceAfter=6)]
        if 'spacer' in node.classes:
            return [Spacer(1, _length(node.attrs.get('data-height'), 12))]

        out: list = []
        inline: list = []
        for child in node.children:
            if isinstance(child, str) or child.tag in INLINE_TAGS:
                inline.append(child)
            else:
                self._flush(node.tag, inline, ctx, out)
                out.extend(self.render_block(child, child_ctx, width))
        self._flush(node.tag, inline, ctx, out)

        if 'keep-together' in node.classes and out:
            return [KeepTogether(out)]
        return out

    @staticmethod
    def _rows(table: Node) -> List[Node]:
        return [c for c in table.children if isinstance(c, Node) and c.tag == 'tr']

    def _table(self, node: Node, ctx: dict, width: float) -> list:
        cells = [[c for c in tr.children if isinstance(c, Node) and c.tag == 'td'] for tr in self._rows(node)]
        col_count = max((len(r) for r in cells), default=0)
        if not col_count:
            return []

        raw_widths = node.attrs.get('data-widths')
        if raw_widths:
            percents = [float(p) for p in raw_widths.split(',')]
            col_widths = [width * p / 100.0 for p in percents][:col_count]
            col_widths += [width / col_count] * (col_count - len(col_widths))
        else:
            col_widths = [width / col_count] * col_count

        data = []
        for row in cells:
            rendered = []
            for i, td in enumerate(row):
                flows = self.render_block(td, ctx, max(col_widths[i] - 8, 10))
                rendered.append(flows or '')
            rendered += [''] * (col_count - len(rendered))
            data.append(rendered)

        classes = node.classes
        commands = [
            ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
            ('LEFTPADDING', (0, 0), (-1, -1), 4),
            ('RIGHTPADDING', (0, 0), (-1, -1), 4),
            ('TOPPADDING', (0, 0), (-1, -1), 2),
            ('BOTTOMPADDING', (0, 0), (-1, -1), 2),
        ]
        if 'info' in classes:
            commands.append(('VALIGN', (0, 0), (-1, -1), 'TOP'))
            commands.append(('LINEBELOW', (1, 0), (-1, -1), 0.4, colors.grey))
        if 'boxed' in classes:
            commands.append(('BOX', (0, 0), (-1, -1), 1, BRAND_BLUE))

        table = Table(data, colWidths=col_widths, hAlign='CENTER')
        table.setStyle(TableStyle(commands))
        return [table]

    def _image(self, node: Node, max_width: float, alignment) -> Optional[Image]:
        src = (node.attrs.get('src') or '').strip()
        if not src.startswith('data:'):
            logger.debug("Skipping non-inline image: %s", src[:60])
            return None
        try:
            _, encoded = src.split(',', 1)
            raw = base64.b64decode(encoded)
            iw, ih = ImageReader(BytesIO(raw)).getSize()
        except (ValueError, binascii.Error, OSError) as e:
            logger.warning("Could not decode inline image: %s", e)
            return None

        w = _length(node.attrs.get('width'))
        h = _length(node.attrs.get('height'))
        if w and not h:
            h = w * ih / iw
        elif h and not w:
            w = h * iw / ih
        elif not w and not h:
            w, h = iw * 0.75, ih * 0.75
        if w > max_width:
            h = h * max_width / w
            w = max_width

        image = Image(BytesIO(raw), width=w, height=h)
        image.hAlign = IMAGE_ALIGN.get(alignment, 'CENTER')
        return image

    # -- document -----------------------------------------------------------------

    def _page_decorator(self, watermark: Optional[str], border: bool):
        page_w, page_h = self.pagesize

        def decorate(c, doc):
            c.saveState()
            if border:
                c.setStrokeColor(BRAND_BLUE)
                c.setLineWidth(2)
                c.rect(8 * mm, 8 * mm, page_w - 16 * mm, page_h - 16 * mm, stroke=1, fill=0)
                c.setLineWidth(0.6)
                c.rect(10 * mm, 10 * mm, page_w - 20 * mm, page_h - 20 * mm, stroke=1, fill=0)
            if watermark:
                c.translate(page_w / 2, page_h / 2)
                c.rotate(45)
                c.setFillColor(colors.Color(0.12, 0.23, 0.54, alpha=0.07))
                c.setFont('Helvetica-Bold', 60)
                c.drawCentredString(0, 0, watermark)
            c.restoreState()

        return decorate

    def print(self, html: str) -> bytes:
        root = parse_html(html)
        body = root.find('body') or root
        title_node = root.find('title')
        frame_width = self.pagesize[0] - 2 * self.margin

        flowables = self.render_block(body, {}, frame_width)
        if not flowables:
            raise PrintError('Document has no printable content')

        decorate = self._page_decorator(
            body.attrs.get('data-watermark'),
            (body.attrs.get('data-border') or '').lower() == 'true',
        )
        buffer = BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=self.pagesize,
            leftMargin=self.margin,
            rightMargin=self.margin,
            topMargin=self.margin,
            bottomMargin=self.margin,
            title=_collapse(title_node.text()).strip() if title_node else '',
        )
        try:
            doc.build(flowables, onFirstPage=decorate, onLaterPages=decorate)
        except LayoutError as e:
            raise PrintError(f'Failed to lay out PDF: {e}') from e
        return buffer.getvalue()


def print_html_to_pdf(html: str) -> bytes:
    """Print an HTML document to PDF bytes."""
    return HtmlPrinter().print(html)
