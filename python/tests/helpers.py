"""Test helpers for building EPUB archives in memory.

Provides:
- Container / package / NCX / EPUB 3 nav document builders
- Chapter XHTML builder
- make_epub() to zip everything into archive bytes
"""

import io
import zipfile

CONTAINER_XML = """\
<?xml version="1.0" encoding="UTF-8"?>
<container xmlns="urn:oasis:names:tc:opendocument:xmlns:container" version="1.0">
  <rootfiles>
    <rootfile full-path="{opf_path}" media-type="application/oebps-package+xml"/>
  </rootfiles>
</container>"""

XHTML = "application/xhtml+xml"
NCX = "application/x-dtbncx+xml"


def build_opf(
    manifest: list[tuple[str, str, str]],
    spine: list[str],
    *,
    title: str | None = "Test Book",
    toc_id: str | None = None,
    nav_id: str | None = None,
) -> str:
    """Build an OPF package document.

    manifest: [(manifest_id, href, media_type), ...]
    spine: [idref, ...]
    """
    manifest_lines = []
    for mid, href, mtype in manifest:
        props = ' properties="nav"' if mid == nav_id else ""
        manifest_lines.append(f'    <item id="{mid}" href="{href}" media-type="{mtype}"{props}/>')

    spine_refs = "\n".join(f'    <itemref idref="{idref}"/>' for idref in spine)
    toc_attr = f' toc="{toc_id}"' if toc_id else ""
    title_el = f"    <dc:title>{title}</dc:title>" if title else ""

    return f"""\
<?xml version="1.0" encoding="UTF-8"?>
<package xmlns="http://www.idpf.org/2007/opf"
         xmlns:dc="http://purl.org/dc/elements/1.1/"
         version="2.0">
  <metadata>
{title_el}
  </metadata>
  <manifest>
{chr(10).join(manifest_lines)}
  </manifest>
  <spine{toc_attr}>
{spine_refs}
  </spine>
</package>"""


def build_chapter_xhtml(body_content: str) -> str:
    return f"""\
<?xml version="1.0" encoding="UTF-8"?>
<html xmlns="http://www.w3.org/1999/xhtml">
<head><title>Chapter</title></head>
<body>
{body_content}
</body>
</html>"""


def build_ncx(
    entries: list[tuple[str, str]],
    nested: dict[int, list[tuple[str, str]]] | None = None,
) -> str:
    """entries: [(label, src), ...]; nested: {index of parent entry: [(label, src), ...]}"""
    nested = nested or {}
    points = []
    order = 1
    for i, (label, src) in enumerate(entries):
        children = []
        for child_label, child_src in nested.get(i, []):
            order += 1
            children.append(f"""\
      <navPoint id="np-{i}-{order}" playOrder="{order}">
        <navLabel><text>{child_label}</text></navLabel>
        <content src="{child_src}"/>
      </navPoint>""")
        points.append(f"""\
    <navPoint id="np-{i}" playOrder="{order}">
      <navLabel><text>{label}</text></navLabel>
      <content src="{src}"/>
{chr(10).join(children)}
    </navPoint>""")
        order += 1
    return f"""\
<?xml version="1.0" encoding="UTF-8"?>
<ncx xmlns="http://www.daisy.org/z3986/2005/ncx/" version="2005-1">
  <navMap>
{chr(10).join(points)}
  </navMap>
</ncx>"""


def build_epub3_nav(entries: list[tuple[str, str]]) -> str:
    """entries: [(label, href), ...]"""
    li_items = "\n".join(f'      <li><a href="{href}">{label}</a></li>' for label, href in entries)
    return f"""\
<?xml version="1.0" encoding="UTF-8"?>
<html xmlns="http://www.w3.org/1999/xhtml" xmlns:epub="http://www.idpf.org/2007/ops">
<body>
  <nav epub:type="landmarks">
    <ol><li><a href="cover.xhtml">Cover</a></li></ol>
  </nav>
  <nav epub:type="toc">
    <ol>
{li_items}
    </ol>
  </nav>
</body>
</html>"""


def make_epub(
    files: dict[str, str | bytes],
    opf_path: str = "OEBPS/content.opf",
    *,
    container: str | None = None,
) -> bytes:
    """Build an EPUB ZIP in memory.

    ``container`` overrides the container.xml body; pass "" to omit it.
    """
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        zf.writestr("mimetype", "application/epub+zip", compress_type=zipfile.ZIP_STORED)
        if container is None:
            zf.writestr("META-INF/container.xml", CONTAINER_XML.format(opf_path=opf_path))
        elif container:
            zf.writestr("META-INF/container.xml", container)
        for path, content in files.items():
            zf.writestr(path, content)
    return buf.getvalue()


def make_book(
    chapters: dict[str, str],
    *,
    spine: list[str] | None = None,
    toc: list[tuple[str, str]] | None = None,
    extra_manifest: list[tuple[str, str, str]] | None = None,
    title: str | None = "Test Book",
) -> bytes:
    """Build a complete EPUB under OEBPS/.

    chapters: {manifest_id: body markup}; each becomes ``<id>.html``.
    spine: idrefs in reading order (defaults to the chapters' order).
    toc: [(label, src), ...] written as toc.ncx under manifest id ``ncx``;
         None omits the navigation document.
    """
    manifest = [(cid, f"{cid}.html", XHTML) for cid in chapters]
    manifest.extend(extra_manifest or [])
    files: dict[str, str | bytes] = {
        f"OEBPS/{cid}.html": build_chapter_xhtml(body) for cid, body in chapters.items()
    }
    if toc is not None:
        manifest.append(("ncx", "toc.ncx", NCX))
        files["OEBPS/toc.ncx"] = build_ncx(toc)

    files["OEBPS/content.opf"] = build_opf(
        manifest,
        spine if spine is not None else list(chapters),
        title=title,
        toc_id="ncx" if toc is not None else None,
    )
    return make_epub(files)
