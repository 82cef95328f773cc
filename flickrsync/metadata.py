"""
Metadata for backed up photos: an RDF/XML sidecar per photo and, optionally,
title/description/tags embedded in the Original JPEG.
"""
import datetime
import getpass
import logging
import os
import re
import socket
import sys
from datetime import timezone
from pathlib import Path
from typing import Dict

from iptcinfo3 import IPTCInfo
from rdflib import Graph, Literal, Namespace, URIRef
from rdflib.namespace import DC, DCMITYPE, DCTERMS, FOAF, RDF, RDFS, SKOS
from unidecode import unidecode

from flickrsync.config import FLICKR_PEOPLE_URL, FLICKR_PHOTOS_URL
from flickrsync.local_store import atomic_write, ensure_dir, file_uri
from flickrsync.models import RemotePhoto, RenditionKind

logger = logging.getLogger(__name__)

A = Namespace("http://www.w3.org/2000/10/annotation-ns#")
ACL = Namespace("http://www.w3.org/2001/02/acls#")
CC = Namespace("http://web.resource.org/cc/")
IR = Namespace("http://www.w3.org/2004/02/image-regions#")
FLICKR = Namespace("x-urn:flickr:")
COMPUTER = Namespace(f"x-urn:{sys.platform}:")

# Flickr license ids -> license URIs. Anything else is kept as a literal.
LICENSES = {
    "1": "http://creativecommons.org/licenses/by-nc-sa/2.0/",
    "2": "http://creativecommons.org/licenses/by-nc/2.0/",
    "3": "http://creativecommons.org/licenses/by-nc-nd/2.0/",
    "4": "http://creativecommons.org/licenses/by/2.0/",
    "5": "http://creativecommons.org/licenses/by-sa/2.0/",
    "6": "http://creativecommons.org/licenses/by-nd/2.0/",
    "9": "http://creativecommons.org/publicdomain/zero/1.0/",
    "10": "http://creativecommons.org/publicdomain/mark/1.0/",
}


def visibility(is_public: bool, is_family: bool, is_friend: bool) -> str:
    if is_public:
        return "public"
    if is_family and is_friend:
        return "family;friend"
    if is_family:
        return "family"
    if is_friend:
        return "friend"
    return "private"


def w3cdtf(when: datetime.datetime = None) -> str:
    when = when or datetime.datetime.now(timezone.utc)
    return when.strftime("%Y-%m-%dT%H:%M:%SZ")


def photo_uri(photo: RemotePhoto) -> str:
    return f"{FLICKR_PHOTOS_URL}{photo.owner}/{photo.id}"


def _creator():
    try:
        user = getpass.getuser()
    except (KeyError, OSError):
        user = "unknown"
    host = socket.gethostname().split(".")[0]
    return URIRef(f"x-urn:{host}#{user}"), user


def build_graph(photo: RemotePhoto, written: Dict[RenditionKind, Path],
                photos_root=None, alias: str = None, now: datetime.datetime = None) -> Graph:
    """
    Describe a photo, its tags and notes, and the local files written for
    it during this run.
    """
    g = Graph()
    for prefix, ns in (("dc", DC), ("dcterms", DCTERMS), ("dctype", DCMITYPE), ("foaf", FOAF),
                       ("rdfs", RDFS), ("skos", SKOS), ("a", A), ("acl", ACL), ("cc", CC), ("i", IR),
                       ("flickr", FLICKR), ("computer", COMPUTER)):
        g.bind(prefix, ns)

    photo_ref = URIRef(photo_uri(photo))
    owner_ref = URIRef(FLICKR_PEOPLE_URL + photo.owner)

    g.add((photo_ref, RDF.type, FLICKR.photo))
    g.add((photo_ref, DC.title, Literal(photo.title)))
    g.add((photo_ref, DC.description, Literal(photo.description)))
    g.add((photo_ref, DCTERMS.created, Literal(photo.taken)))
    if photo.posted:
        posted = datetime.datetime.fromtimestamp(photo.posted, timezone.utc)
        g.add((photo_ref, DCTERMS.dateSubmitted, Literal(w3cdtf(posted))))
    if photo.last_update:
        modified = datetime.datetime.fromtimestamp(photo.last_update, timezone.utc)
        g.add((photo_ref, DCTERMS.modified, Literal(w3cdtf(modified))))
    g.add((photo_ref, DC.creator, owner_ref))
    g.add((photo_ref, ACL.access,
           Literal(visibility(photo.is_public, photo.is_family, photo.is_friend))))

    if photo.license in LICENSES:
        g.add((photo_ref, CC.license, URIRef(LICENSES[photo.license])))
    elif photo.license:
        g.add((photo_ref, FLICKR.license, Literal(photo.license)))

    seen = set()
    for tag in photo.tags:
        if tag.id in seen:
            continue
        seen.add(tag.id)
        tag_ref = URIRef(f"{FLICKR_PHOTOS_URL}{photo.owner}/tags/{tag.normalized}")
        g.add((photo_ref, DC.subject, tag_ref))
        g.add((tag_ref, RDF.type, FLICKR.tag))
        g.add((tag_ref, SKOS.prefLabel, Literal(tag.raw)))
        g.add((tag_ref, SKOS.altLabel, Literal(tag.normalized)))
        g.add((tag_ref, DC.creator, URIRef(FLICKR_PEOPLE_URL + tag.author)))

    for note in photo.notes:
        note_ref = URIRef(f"{photo_uri(photo)}#note-{note.id}")
        g.add((photo_ref, A.hasAnnotation, note_ref))
        g.add((note_ref, RDF.type, FLICKR.note))
        g.add((note_ref, IR.boundingBox, Literal(f"{note.x} {note.y} {note.w} {note.h}")))
        g.add((note_ref, A.body, Literal(note.body)))
        g.add((note_ref, A.author, URIRef(FLICKR_PEOPLE_URL + note.author)))
        g.add((note_ref, A.annotates, photo_ref))

    creator_ref, user = _creator()
    created = Literal(w3cdtf(now))

    for kind in RenditionKind:
        if kind not in written:
            continue
        file_ref = URIRef(file_uri(written[kind], photos_root, alias))
        g.add((file_ref, RDF.type, DCMITYPE.StillImage))
        g.add((file_ref, RDFS.seeAlso, photo_ref))
        g.add((file_ref, DC.creator, creator_ref))
        g.add((file_ref, DCTERMS.created, created))

    g.add((COMPUTER.user, RDFS.subClassOf, FOAF.Person))
    g.add((creator_ref, FOAF.nick, Literal(user)))
    g.add((creator_ref, RDF.type, COMPUTER.user))

    return g


def store_rdf(photo: RemotePhoto, written: Dict[RenditionKind, Path], meta_path: Path,
              has_changed: bool, force: bool = False, photos_root=None, alias: str = None) -> bool:
    """
    Write the RDF/XML sidecar for a photo. Skipped (and still successful)
    when nothing changed and the sidecar already exists.
    """
    meta_path = Path(meta_path)
    if not force and not has_changed and meta_path.is_file():
        logger.info("%s has not changed, skipping", meta_path)
        return True

    if not ensure_dir(meta_path.parent):
        return False

    logger.info("writing RDF data for photo %s", photo.id)
    data = build_graph(photo, written, photos_root, alias).serialize(format="xml")
    if isinstance(data, str):
        data = data.encode("utf-8")

    try:
        atomic_write(meta_path, data)
    except OSError as e:
        logger.error("failed to write '%s', %s", meta_path, e)
        return False
    return True


def iptcify(text: str) -> str:
    """
    Force text into ISO-8859-1: characters outside it are transliterated
    to ASCII, or dropped if there is no transliteration.
    """
    out = []
    for ch in text or "":
        try:
            ch.encode("latin-1")
            out.append(ch)
        except UnicodeEncodeError:
            out.append(unidecode(ch))
    return "".join(out)


def iptc_fields(photo: RemotePhoto) -> dict:
    keywords = []
    for tag in photo.tags:
        raw = iptcify(tag.raw)
        if re.search(r"\s", raw):
            raw = f'"{raw}"'
        keywords.append(raw)

    return {
        "Headline": iptcify(photo.title),
        "Caption/Abstract": iptcify(photo.description),
        "Keywords": keywords,
    }


def _is_jpeg(path: Path) -> bool:
    try:
        with open(path, "rb") as f:
            return f.read(2) == b"\xff\xd8"
    except OSError:
        return False


def embed_fields(image_path: Path, fields: dict) -> bool:
    """
    Write headline, caption and keywords into the image as IPTC
    Application2 records, one Keywords record per keyword. Text is stored
    as ISO-8859-1. Only the IPTC block is replaced, EXIF and the other
    APP segments are carried over untouched.
    """
    path = Path(image_path)
    if not _is_jpeg(path):
        logger.error("Failed to store embedded metadata in %s, not a JPEG", path)
        return False

    temp_path = path.with_name(f".{path.name}.iptc.tmp")
    try:
        info = IPTCInfo(str(path), force=True)
        info["headline"] = fields.get("Headline", "").encode("latin-1")
        info["caption/abstract"] = fields.get("Caption/Abstract", "").encode("latin-1")
        info["keywords"] = [k.encode("latin-1") for k in fields.get("Keywords", [])]

        # save_as() keeps a "~" copy of any file it overwrites
        if temp_path.exists():
            temp_path.unlink()
        if not info.save_as(str(temp_path)):
            raise OSError("IPTC writer did not produce an image")
        os.replace(temp_path, path)
    except Exception as e:
        logger.error("Failed to store embedded metadata in %s, %s", path, e)
        if temp_path.exists():
            temp_path.unlink()
        return False
    return True


def store_iptc(photo: RemotePhoto, original: Path) -> bool:
    logger.info("embedding metadata in %s", original)
    return embed_fields(original, iptc_fields(photo))

