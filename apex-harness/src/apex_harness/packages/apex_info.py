"""APEX file lookup and identity extraction.

An APEX is a zip archive whose manifest carries the module identity. Two
manifest encodings exist in the wild:

  * ``apex_manifest.pb``   (protobuf ``ApexManifest``; field 1 name, field 2 version)
  * ``apex_manifest.json`` (legacy; ``{"name": ..., "version": ...}``)

Only the (name, version) pair is extracted. Everything else in the package is
left alone.
"""

from __future__ import annotations

import json
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Tuple

PB_MANIFEST = "apex_manifest.pb"
JSON_MANIFEST = "apex_manifest.json"


class PackageInspectionError(ValueError):
    """Raised when a file is not a recognizable APEX package."""


@dataclass(frozen=True)
class ApexInfo:
    name: str
    version_code: int

    def __str__(self) -> str:
        return f"{self.name}:v{self.version_code}"


def get_test_file(filename: str | Path, search_dirs: Iterable[str | Path] = ()) -> Path:
    """Locate a test package by name.

    Absolute paths are returned as-is when they exist. Relative names are
    looked up in ``search_dirs`` in order, then in the working directory.
    """

    candidate = Path(filename)
    if candidate.is_absolute():
        if candidate.is_file():
            return candidate
        raise FileNotFoundError(f"test file not found: {candidate}")

    searched: list[str] = []
    for d in list(search_dirs) + [Path.cwd()]:
        path = Path(d) / candidate
        searched.append(str(Path(d)))
        if path.is_file():
            return path
    raise FileNotFoundError(f"test file {filename!r} not found; searched: {searched}")


def _read_varint(buf: bytes, pos: int) -> Tuple[int, int]:
    result = 0
    shift = 0
    while True:
        if pos >= len(buf):
            raise PackageInspectionError("truncated varint in apex_manifest.pb")
        b = buf[pos]
        pos += 1
        result |= (b & 0x7F) << shift
        if not b & 0x80:
            return result, pos
        shift += 7
        if shift > 63:
            raise PackageInspectionError("varint too long in apex_manifest.pb")


def _parse_pb_manifest(data: bytes) -> Tuple[Optional[str], Optional[int]]:
    name: Optional[str] = None
    version: Optional[int] = None
    pos = 0
    while pos < len(data):
        key, pos = _read_varint(data, pos)
        field, wire_type = key >> 3, key & 0x7
        if wire_type == 0:
            value, pos = _read_varint(data, pos)
            if field == 2:
                # int64 is two's complement on the wire.
                version = value - (1 << 64) if value >= 1 << 63 else value
        elif wire_type == 2:
            length, pos = _read_varint(data, pos)
            chunk = data[pos : pos + length]
            if len(chunk) != length:
                raise PackageInspectionError("truncated field in apex_manifest.pb")
            pos += length
            if field == 1:
                try:
                    name = chunk.decode("utf-8")
                except UnicodeDecodeError as e:
                    raise PackageInspectionError(f"invalid name in apex_manifest.pb: {e}") from e
        elif wire_type in (1, 5):
            pos += 8 if wire_type == 1 else 4
            if pos > len(data):
                raise PackageInspectionError("truncated field in apex_manifest.pb")
        else:
            raise PackageInspectionError(f"unsupported wire type {wire_type} in apex_manifest.pb")
    return name, version


def _parse_json_manifest(data: bytes) -> Tuple[Optional[str], Optional[int]]:
    try:
        obj = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise PackageInspectionError(f"invalid apex_manifest.json: {e}") from e
    if not isinstance(obj, dict):
        raise PackageInspectionError("apex_manifest.json must be an object")
    name = obj.get("name")
    version = obj.get("version")
    try:
        version = int(version) if version is not None else None
    except (TypeError, ValueError):
        version = None
    return (str(name) if name else None), version


def resolve_apex_info(path: str | Path) -> ApexInfo:
    """Return the (name, version) identity stored in an APEX file's manifest."""

    path = Path(path)
    try:
        with zipfile.ZipFile(path) as zf:
            members = set(zf.namelist())
            if PB_MANIFEST in members:
                name, version = _parse_pb_manifest(zf.read(PB_MANIFEST))
            elif JSON_MANIFEST in members:
                name, version = _parse_json_manifest(zf.read(JSON_MANIFEST))
            else:
                raise PackageInspectionError(f"{path} has no apex manifest")
    except zipfile.BadZipFile as e:
        raise PackageInspectionError(f"{path} is not a zip archive") from e

    if not name or version is None:
        raise PackageInspectionError(f"{path} manifest lacks name/version")
    return ApexInfo(name=name, version_code=int(version))
