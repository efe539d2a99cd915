"""Render an approved record as an Elsevier-style bibliographic XML unit."""

import re
import xml.etree.ElementTree as ET
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from ..core.models import Affiliation, Author, ExtractedMetadata
from ..utils.logging import get_logger

logger = get_logger(__name__)

ANI_NS = "http://www.elsevier.com/xml/ani/ani"
CE_NS = "http://www.elsevier.com/xml/ani/common"
XML_LANG = "{http://www.w3.org/XML/1998/namespace}lang"
XML_DECLARATION = "<?xml version='1.0' encoding='utf-8'?>\n"

ET.register_namespace("", ANI_NS)
ET.register_namespace("ce", CE_NS)

# Characters XML 1.0 does not allow in a document, even escaped.
_ILLEGAL_XML_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\ufffe\uffff\ud800-\udfff]")


def _ani(tag: str) -> str:
    return f"{{{ANI_NS}}}{tag}"


def _ce(tag: str) -> str:
    return f"{{{CE_NS}}}{tag}"


def _clean(value: Optional[str]) -> Optional[str]:
    """Drop characters that would make the document ill-formed (form feeds from PDF text)."""
    if value is None:
        return None
    return _ILLEGAL_XML_CHARS.sub("", str(value))


def _text(parent: ET.Element, tag: str, value: Optional[str], **attrib: str) -> Optional[ET.Element]:
    """Append ``<tag>value</tag>`` unless the value is empty."""
    if value is None or not str(value).strip():
        return None
    element = ET.SubElement(parent, tag, attrib)
    element.text = _clean(value)
    return element


class XmlExporter:
    """
    Serialize :class:`ExtractedMetadata` into the ``<units>`` schema.

    The output depends only on the record (and on ``timestamp`` when one
    is passed), so rendering the same record twice gives identical bytes.

    Example:
        >>> exporter = XmlExporter()
        >>> xml = exporter.render(record)
        >>> exporter.export(record, Path("output/2405.12345v1.xml"))
    """

    def __init__(self, supplier_id: str = "4", order_id: str = "unknown", parcel_id: str = "none"):
        self.supplier_id = supplier_id
        self.order_id = order_id
        self.parcel_id = parcel_id

    def render(self, metadata: ExtractedMetadata, timestamp: Optional[datetime] = None) -> str:
        root = ET.Element(_ani("units"))
        unit = ET.SubElement(root, _ani("unit"), {"type": "ARTICLE"})
        self._unit_info(unit, timestamp)

        bibrecord = ET.SubElement(ET.SubElement(unit, _ani("unit-content")), _ani("bibrecord"))
        item_info = ET.SubElement(bibrecord, _ani("item-info"))
        ET.SubElement(item_info, _ani("status"), {"state": "new"})
        itemidlist = ET.SubElement(item_info, _ani("itemidlist"))
        _text(itemidlist, _ani("itemid"), metadata.paper_id or "UNKNOWN", idtype="ARXIV")

        head = ET.SubElement(bibrecord, _ani("head"))
        self._citation_info(head, metadata)
        title = ET.SubElement(head, _ani("citation-title"))
        titletext = ET.SubElement(title, _ani("titletext"), {XML_LANG: "ENG", "original": "y"})
        titletext.text = _clean(metadata.title)

        self._author_groups(head, metadata)
        self._correspondence(head, metadata)

        abstract = ET.SubElement(
            ET.SubElement(head, _ani("abstracts")), _ani("abstract"), {"original": "y", XML_LANG: "ENG"}
        )
        ET.SubElement(abstract, _ce("para")).text = _clean(metadata.abstract)
        ET.SubElement(head, _ani("source"), {"srcid": "???"})

        self._bibliography(ET.SubElement(bibrecord, _ani("tail")), metadata)

        ET.indent(root, space="  ")
        return XML_DECLARATION + ET.tostring(root, encoding="unicode")

    def export(self, metadata: ExtractedMetadata, path: Path, timestamp: Optional[datetime] = None) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.render(metadata, timestamp), encoding="utf-8")
        logger.info(f"Exported {metadata.paper_id} to {path}")
        return path

    @staticmethod
    def default_filename(metadata: ExtractedMetadata) -> str:
        return f"ACE_{(metadata.paper_id or 'export').replace('/', '_')}.xml"

    # ------------------------------------------------------------------

    def _unit_info(self, unit: ET.Element, timestamp: Optional[datetime]) -> None:
        info = ET.SubElement(unit, _ani("unit-info"))
        _text(info, _ani("unit-id"), "1")
        _text(info, _ani("order-id"), self.order_id)
        _text(info, _ani("parcel-id"), self.parcel_id)
        _text(info, _ani("supplier-id"), self.supplier_id)
        if timestamp is not None:
            _text(info, _ani("timestamp"), timestamp.isoformat())

    def _citation_info(self, head: ET.Element, metadata: ExtractedMetadata) -> None:
        info = ET.SubElement(head, _ani("citation-info"))
        ET.SubElement(info, _ani("citation-type"), {"code": "ar"})
        ET.SubElement(info, _ani("citation-language"), {XML_LANG: "ENG"})
        ET.SubElement(info, _ani("abstract-language"), {XML_LANG: "ENG"})
        if metadata.keywords:
            keywords = ET.SubElement(info, _ani("author-keywords"))
            for keyword in metadata.keywords:
                _text(keywords, _ani("author-keyword"), keyword)

    def _author_groups(self, head: ET.Element, metadata: ExtractedMetadata) -> None:
        sequence = {id(author): seq for seq, author in enumerate(metadata.authors, start=1)}

        for index, affiliation in enumerate(metadata.affiliations):
            linked = metadata.authors_for_affiliation(index)
            if not linked:
                continue
            group = ET.SubElement(head, _ani("author-group"), {"seq": str(index + 1)})
            for author in linked:
                self._author(group, author, sequence[id(author)])
            self._affiliation(group, affiliation, with_source_text=True)

        orphans = metadata.orphan_authors()
        if orphans:
            group = ET.SubElement(head, _ani("author-group"), {"seq": str(len(metadata.affiliations) + 1)})
            for author in orphans:
                self._author(group, author, sequence[id(author)])

    def _author(self, group: ET.Element, author: Author, seq: int) -> None:
        attrib = {"seq": str(seq)}
        if author.orcid_id:
            attrib["orcid"] = _clean(author.orcid_id)
        if author.is_corresponding:
            attrib["type"] = "corresp"
        element = ET.SubElement(group, _ani("author"), attrib)
        self._person(element, author)
        _text(element, _ce("degrees"), author.degree)
        _text(element, _ce("e-address"), author.email)

    @staticmethod
    def _person(parent: ET.Element, author: Author) -> None:
        _text(parent, _ce("initials"), author.initials)
        _text(parent, _ce("surname"), author.surname)
        _text(parent, _ce("given-name"), author.first_name)
        _text(parent, _ce("suffix"), author.suffix)

    def _affiliation(self, parent: ET.Element, affiliation: Affiliation, with_source_text: bool) -> None:
        element = ET.SubElement(parent, _ani("affiliation"))
        for organization in self._organizations(affiliation):
            ET.SubElement(element, _ani("organization")).text = _clean(organization)
        _text(element, _ani("address-part"), affiliation.address_part)
        _text(element, _ani("city"), affiliation.city)
        _text(element, _ani("state"), affiliation.state)
        _text(element, _ani("postal-code"), affiliation.postal_code)
        if affiliation.country_code:
            ET.SubElement(element, _ani("country"), {"iso-code": _clean(affiliation.country_code)})
        else:
            _text(element, _ani("country"), affiliation.country)
        if with_source_text:
            _text(element, _ce("source-text"), affiliation.source_text)

    @staticmethod
    def _organizations(affiliation: Affiliation) -> List[str]:
        if affiliation.organizations:
            return list(affiliation.organizations)
        return [(affiliation.source_text or "").split(",")[0].strip()]

    def _correspondence(self, head: ET.Element, metadata: ExtractedMetadata) -> None:
        for author in metadata.authors:
            if not author.is_corresponding:
                continue
            element = ET.SubElement(head, _ani("correspondence"))
            self._person(ET.SubElement(element, _ani("person")), author)
            if author.affiliation_refs:
                self._affiliation(element, metadata.affiliations[author.affiliation_refs[0]], with_source_text=False)
            _text(element, _ce("e-address"), author.email)

    @staticmethod
    def _bibliography(tail: ET.Element, metadata: ExtractedMetadata) -> None:
        bibliography = ET.SubElement(tail, _ani("bibliography"), {"refcount": str(len(metadata.references))})
        for seq, reference in enumerate(metadata.references, start=1):
            element = ET.SubElement(bibliography, _ani("reference"), {"seq": str(seq)})
            ET.SubElement(element, _ani("ref-info"))
            ET.SubElement(element, _ani("ref-fulltext")).text = _clean(reference.resolved_text)
            ET.SubElement(element, _ce("source-text")).text = _clean(reference.source_text)
