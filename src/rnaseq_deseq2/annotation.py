"""
Fetch and parse the gene-annotation table.

The annotation is a plain-text table with a header row, delimited by tabs
(or, when the header holds no tab, by runs of whitespace). The first column
is the gene identifier and the second the display name unless configured
otherwise.
"""

from __future__ import annotations
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union
import pandas as pd
import requests

from .errors import NetworkError, ParseError

logger = logging.getLogger(__name__)

GZIP_MAGIC = b"\x1f\x8b"
CHUNK_SIZE = 1 << 16


@dataclass(frozen=True)
class AnnotationTable:
    """Read-only gene annotation.

    Attributes:
        id_column: Column holding the gene identifier.
        name_column: Column holding the display name.
        source: URL or path the table came from.
    """
    _frame: pd.DataFrame
    id_column: str
    name_column: str
    source: Optional[str] = None

    @property
    def frame(self) -> pd.DataFrame:
        """A copy of the annotation, indexed by gene identifier in file order."""
        return self._frame.copy()

    @property
    def gene_ids(self) -> pd.Index:
        return self._frame.index

    @property
    def names(self) -> pd.Series:
        return self._frame[self.name_column].copy()

    @property
    def columns(self) -> list[str]:
        """Annotation field names (identifier excluded)."""
        return list(self._frame.columns)

    def __len__(self) -> int:
        return len(self._frame)


def parse_annotation(
    path: Union[str, Path],
    id_column: Optional[str] = None,
    name_column: Optional[str] = None,
    source: Optional[str] = None,
) -> AnnotationTable:
    """Parse an annotation file.

    Raises:
        ParseError: If the content is empty, compressed, unparseable, has a
            single column, lacks the requested columns, or repeats an
            identifier.
    """
    path = Path(path)
    source = source or str(path)

    with open(path, "rb") as fh:
        head = fh.read(4096)
    if not head.strip():
        raise ParseError("Annotation content is empty", source=source)
    if head.startswith(GZIP_MAGIC):
        raise ParseError("Annotation is compressed; a raw text resource is required", source=source)

    first_line = head.split(b"\n", 1)[0]
    sep = "\t" if b"\t" in first_line else r"\s+"
    try:
        frame = pd.read_csv(path, sep=sep, dtype=str, keep_default_na=False, na_values=[""])
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as err:
        raise ParseError(f"Annotation could not be parsed: {err}", source=source) from err

    if frame.shape[1] < 2:
        raise ParseError(
            f"Annotation needs an identifier and at least one field, got columns {list(frame.columns)}",
            source=source,
        )

    id_column = id_column or str(frame.columns[0])
    if id_column not in frame.columns:
        raise ParseError(f"Identifier column '{id_column}' not found", source=source)
    frame = frame.set_index(id_column)
    name_column = name_column or str(frame.columns[0])
    if name_column not in frame.columns:
        raise ParseError(f"Name column '{name_column}' not found", source=source)

    if frame.index.isna().any():
        raise ParseError(f"Identifier column '{id_column}' has empty values", source=source)
    if frame.index.has_duplicates:
        dupes = frame.index[frame.index.duplicated()].unique()
        raise ParseError(
            f"Identifier column '{id_column}' is not unique; duplicates include {list(dupes[:5])}",
            source=source,
        )

    frame.index = frame.index.astype(str)
    frame.index.name = id_column
    logger.info("Parsed annotation with %d genes and %d fields from %s", len(frame), frame.shape[1], source)
    return AnnotationTable(_frame=frame, id_column=id_column, name_column=name_column, source=source)


def load_annotation(
    path: Union[str, Path],
    id_column: Optional[str] = None,
    name_column: Optional[str] = None,
) -> AnnotationTable:
    """Load an annotation table from a local file."""
    path = Path(path)
    if not path.exists():
        raise ParseError("Annotation file not found", source=str(path))
    return parse_annotation(path, id_column=id_column, name_column=name_column)


def fetch_annotation(
    url: str,
    timeout: Optional[float] = 60.0,
    id_column: Optional[str] = None,
    name_column: Optional[str] = None,
    session: Optional[requests.Session] = None,
) -> AnnotationTable:
    """Download and parse an annotation table.

    The content is streamed to a temporary file which is removed on every
    exit path. A single attempt is made.

    Args:
        url: Direct link to a raw, uncompressed text table.
        timeout: Seconds for connecting and for each read; None waits forever.
        id_column: Identifier column; first column when None.
        name_column: Display-name column; second column when None.
        session: Optional requests session.

    Raises:
        NetworkError: If the URL is unreachable or returns an error status.
        ParseError: If the downloaded content is not a valid annotation table.
    """
    http = session if session is not None else requests
    logger.info("Downloading annotation from %s", url)

    fd, tmp_name = tempfile.mkstemp(prefix="annotation_", suffix=".txt")
    try:
        with os.fdopen(fd, "wb") as out:
            try:
                with http.get(url, stream=True, timeout=timeout) as response:
                    response.raise_for_status()
                    for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                        if chunk:
                            out.write(chunk)
            except requests.exceptions.RequestException as err:
                raise NetworkError(f"Annotation download failed: {err}", source=url) from err
        return parse_annotation(tmp_name, id_column=id_column, name_column=name_column, source=url)
    finally:
        os.unlink(tmp_name)
