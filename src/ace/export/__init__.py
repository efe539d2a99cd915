"""XML export of approved records."""

from .xml_writer import XmlExporter

__all__ = ["XmlExporter"]
