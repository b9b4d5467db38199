"""Small helpers for walking and building KML element trees."""

from __future__ import annotations

from typing import Iterator, Sequence
from xml.etree import ElementTree as ET


def namespace_of(element: ET.Element) -> str:
    """Return the namespace URI of ``element`` (empty when unqualified)."""

    tag = element.tag
    if isinstance(tag, str) and tag.startswith("{"):
        return tag[1:].split("}", 1)[0]
    return ""


def local_name(element: ET.Element) -> str:
    tag = element.tag
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1]


def qualify(namespace: str, tag: str) -> str:
    return f"{{{namespace}}}{tag}" if namespace else tag


def child_text(element: ET.Element, tag: str) -> str:
    found = element.find(f"./{{*}}{tag}")
    if found is None or found.text is None:
        return ""
    return found.text.strip()


def child_folders(element: ET.Element) -> Iterator[ET.Element]:
    for child in element:
        if local_name(child) == "Folder":
            yield child


def find_child_folder(element: ET.Element, name: str) -> ET.Element | None:
    target = name.strip().upper()
    for folder in child_folders(element):
        if child_text(folder, "name").upper() == target:
            return folder
    return None


def find_folder_path(root: ET.Element, names: Sequence[str]) -> ET.Element | None:
    """Locate a folder chain such as ``HP`` -> ``HOME``.

    The first name may sit anywhere in the tree; every following name must be
    a direct child folder of the previous one. Names compare case-insensitively.
    """

    if not names:
        return None
    head = names[0].strip().upper()
    for folder in root.iterfind(".//{*}Folder"):
        if child_text(folder, "name").upper() != head:
            continue
        current: ET.Element | None = folder
        for name in names[1:]:
            current = find_child_folder(current, name)
            if current is None:
                break
        if current is not None:
            return current
    return None


def find_document(root: ET.Element) -> ET.Element | None:
    """Return the first ``Document`` container (the root itself included)."""

    if local_name(root) == "Document":
        return root
    return root.find(".//{*}Document")
