import hashlib
from typing import Iterable

PATH_DELIMITER = "-"


def _escape_segment(segment) -> str:
    return str(segment).replace("\\", "\\\\").replace(PATH_DELIMITER, "\\" + PATH_DELIMITER)


def compute_id(path: Iterable[str]) -> str:
    # Paths get long with nesting, sha1 keeps ids short. Segments are escaped
    # so a delimiter inside one cannot make two paths join to the same text.
    joined = PATH_DELIMITER.join(_escape_segment(segment) for segment in path)
    return hashlib.sha1(joined.encode("utf-8")).hexdigest()


def widget_path(field_name: str, field_parents: Iterable[str] = ()) -> list[str]:
    return [*field_parents, field_name, "form"]


def wrapper_id(ief_id: str) -> str:
    return f"inline-entity-form-{ief_id}"


def element_name(field_path: Iterable[str], *parts) -> str:
    """Name (or form prefix) of an element nested under a widget's path."""
    return PATH_DELIMITER.join([*(str(segment) for segment in field_path), *(str(part) for part in parts)])
